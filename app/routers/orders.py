# app/routers/orders.py
import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.core.auth import require_admin, require_auth
from app.core.config import get_settings
from app.core.razorpay_client import RazorpayGateway, get_gateway
from app.database import get_session
from app.models.user import User
from app.repositories.order_repo import OrderRepository
from app.schemas.order import (
    DeliveryDay,
    OrderCreate,
    OrderCreateResponse,
    OrderRead,
    OrderStatus,
    OrderStatusUpdate,
)
from app.schemas.payment import (
    GatewayOrderCreate,
    GatewayOrderRead,
    PaymentVerify,
    PaymentVerifyRead,
)
from app.services.notification_service import NotificationService
from app.services.order_service import OrderService
from app.services.payment_service import PaymentService

router = APIRouter(prefix="/orders", tags=["Orders"])

settings = get_settings()

order_repo = OrderRepository()
service = OrderService(order_repo, settings.RAZORPAY_KEY_SECRET, NotificationService())
payment_service = PaymentService(order_repo, service, settings.RAZORPAY_KEY_SECRET)


# -------- Checkout endpoints --------


@router.post("/create-razorpay-order", response_model=GatewayOrderRead)
def create_razorpay_order(
    payload: GatewayOrderCreate,
    session: Session = Depends(get_session),
    gateway: RazorpayGateway = Depends(get_gateway),
    current_user: User = Depends(require_auth),
):
    """
    Create a Razorpay order for the hosted checkout.

    `amount` is in paise. Send the order draft as `order` to have it
    stored as a pending order before payment.
    """
    return payment_service.create_gateway_order(session, gateway, current_user, payload)


@router.post("/verify-payment", response_model=PaymentVerifyRead)
def verify_payment(
    payload: PaymentVerify,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Verify the checkout callback signature.

    Returns {"success": false} on mismatch.
    """
    return payment_service.verify_payment(session, current_user, payload)


@router.post("", response_model=OrderCreateResponse)
def create_order(
    payload: OrderCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Persist the order at the end of checkout.

    Razorpay orders need a valid callback signature. Posting the same
    payment again returns the order already recorded for it.
    """
    order = service.create_order(session, current_user.id, payload)
    return OrderCreateResponse(order=order)


@router.get("/me", response_model=list[OrderRead])
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    skip: int = 0,
    limit: int = 50,
):
    """
    List the authenticated user's orders.
    """
    return service.list_user_orders(session, current_user.id, skip, limit)


@router.get("/me/{order_id}", response_model=OrderRead)
def get_my_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    return service.get_user_order(session, current_user.id, order_id)


# -------- Admin endpoints --------


@router.get(
    "",
    response_model=list[OrderRead],
    dependencies=[Depends(require_admin)],
)
def list_all_orders(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
    status: OrderStatus | None = None,
):
    """
    List all orders (admin only), optionally filtered by status.
    """
    return service.list_all_orders(session, skip, limit, status)


@router.get(
    "/upcoming-deliveries",
    response_model=list[OrderRead],
    dependencies=[Depends(require_admin)],
)
def upcoming_deliveries(
    session: Session = Depends(get_session),
    days: int = Query(default=7, ge=0, le=90),
):
    """
    Open orders due for delivery within the next `days` days, soonest first.
    """
    return service.upcoming_deliveries(session, days)


@router.get(
    "/delivery-calendar",
    response_model=list[DeliveryDay],
    dependencies=[Depends(require_admin)],
)
def delivery_calendar(
    session: Session = Depends(get_session),
    year: int | None = Query(default=None, ge=2000),
    month: int | None = Query(default=None, ge=1, le=12),
):
    """
    Orders of one month grouped by delivery date (defaults to this month).
    """
    today = date.today()
    return service.delivery_calendar(session, year or today.year, month or today.month)


@router.get(
    "/{order_id}",
    response_model=OrderRead,
    dependencies=[Depends(require_admin)],
)
def get_order_admin(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    return service.get_order_admin(session, order_id)


@router.patch("/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """
    Update order status (admin only).

      pending    -> confirmed, cancelled

      confirmed  -> processing, cancelled

      processing -> shipped, cancelled

      shipped    -> delivered

      delivered, cancelled -> (no change)

    Razorpay orders without a verified payment cannot be confirmed here.
    """
    return service.update_status(session, order_id, payload, admin.id)
