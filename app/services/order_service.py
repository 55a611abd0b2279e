# app/services/order_service.py
import logging
import time
import uuid
from datetime import date, datetime, timedelta, timezone

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from app.core.signature import PaymentConfigError, verify_payment_signature
from app.models.order import Order, OrderItem, OrderStatusEvent
from app.repositories.order_repo import OrderRepository
from app.schemas.order import (
    DeliveryDay,
    GiftDetails,
    OrderCreate,
    OrderItemRead,
    OrderRead,
    OrderStatusEventRead,
    OrderStatusUpdate,
    PaymentDetails,
    PaymentDetailsRead,
    ShippingDetails,
)
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

# Fulfilment state machine (admin updates)
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"processing", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}

STATUS_MESSAGES: dict[str, str] = {
    "pending": "Order has been placed and is awaiting confirmation",
    "confirmed": "Order has been confirmed",
    "processing": "Your arrangement is being prepared",
    "shipped": "Order is out for delivery",
    "delivered": "Order has been delivered successfully",
    "cancelled": "Order has been cancelled",
}


def make_order_number(now_ms: int | None = None) -> str:
    """ORD followed by the current unix time in milliseconds."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"ORD{now_ms}"


def _delivery_date(order: Order) -> date | None:
    raw = (order.shipping_details or {}).get("delivery_date")
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


class OrderService:
    """
    Business logic for orders.

    Responsibilities:
      - Persist checkout orders (pending drafts and confirmed orders)
      - Require a verified gateway signature before confirming a
        Razorpay order
      - Keep order creation idempotent per gateway payment id
      - Enforce status transitions (admin) and record tracking history
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        key_secret: str,
        notifier: NotificationService | None = None,
    ):
        self.order_repo = order_repo
        self.key_secret = key_secret
        self.notifier = notifier

    # -------- Checkout --------

    def create_pending_order(
        self,
        session: Session,
        user_id: uuid.UUID | None,
        payload: OrderCreate,
        gateway_order_id: str,
    ) -> OrderRead:
        """
        Store the checkout draft before the customer pays.

        The draft is linked to the gateway order so that the verified
        callback (or the final POST /orders) can promote it. Earlier
        unpaid drafts of the same user are cancelled.
        """
        if user_id is not None:
            self._cancel_unpaid_drafts(session, user_id)

        order, _ = self._write_order(
            session,
            user_id,
            payload,
            status_value="pending",
            gateway_order_id=gateway_order_id,
        )
        logger.info(
            "Pending order %s stored for gateway order %s",
            order.order_number,
            gateway_order_id,
        )
        return self._load_order_dto(session, order)

    def create_order(
        self,
        session: Session,
        user_id: uuid.UUID | None,
        payload: OrderCreate,
    ) -> OrderRead:
        """
        Persist an order submitted at the end of checkout.

        Steps:
          1. Razorpay payments: require the callback fields and a valid
             signature (400 otherwise).
          2. Return the existing order if this payment id was already
             recorded for this user (404 if it belongs to someone else).
          3. Promote the user's pending draft for the gateway order, if any.
          4. Otherwise insert a new order ('confirmed' for verified
             payments, 'pending' for cash on delivery).
        """
        payment = payload.payment_details

        if payment.method == "razorpay":
            self._verify_or_400(payment)

            existing = self.order_repo.get_by_payment_id(session, payment.payment_id)
            if existing:
                self._ensure_owner(existing, user_id)
                logger.info(
                    "Payment %s already recorded on %s",
                    payment.payment_id,
                    existing.order_number,
                )
                return self._load_order_dto(session, existing)

            pending = self.order_repo.get_by_gateway_order_id(session, payment.order_id)
            if pending and pending.status == "pending":
                self._ensure_owner(pending, user_id)
                return self.confirm_gateway_payment(
                    session, pending, payment.payment_id, payment.signature
                )

            order, _ = self._write_order(
                session,
                user_id,
                payload,
                status_value="confirmed",
                gateway_order_id=payment.order_id,
                payment_id=payment.payment_id,
                signature=payment.signature,
            )
        else:
            order, _ = self._write_order(
                session, user_id, payload, status_value="pending"
            )

        logger.info("Order %s created with status %s", order.order_number, order.status)
        dto = self._load_order_dto(session, order)
        if order.status == "confirmed":
            self._notify_confirmed(dto)
        return dto

    def confirm_gateway_payment(
        self,
        session: Session,
        order: Order,
        payment_id: str,
        signature: str,
    ) -> OrderRead:
        """
        Promote a pending order after a verified payment.

        Idempotent for the same payment id; a different payment on an
        already paid gateway order is rejected with 409.
        """
        if order.razorpay_payment_id == payment_id:
            return self._load_order_dto(session, order)

        if order.razorpay_payment_id is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Gateway order already paid",
            )

        if order.status != "pending":
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Order is {order.status}, not awaiting payment",
            )

        order.razorpay_payment_id = payment_id
        order.razorpay_signature = signature
        order.status = "confirmed"
        order.updated_at = datetime.now(timezone.utc)

        try:
            self.order_repo.update_order(session, order)
            self._record_status(session, order)
            session.commit()
        except IntegrityError:
            session.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Payment already recorded on another order",
            )
        session.refresh(order)

        logger.info("Order %s confirmed by payment %s", order.order_number, payment_id)
        dto = self._load_order_dto(session, order)
        self._notify_confirmed(dto)
        return dto

    # -------- User-facing reads --------

    def list_user_orders(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderRead]:
        orders = self.order_repo.list_for_user(session, user_id, skip, limit)
        return [self._load_order_dto(session, o) for o in orders]

    def get_user_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
    ) -> OrderRead:
        """
        - 404 if order not found or does not belong to this user.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )
        self._ensure_owner(order, user_id)
        return self._load_order_dto(session, order)

    # -------- Admin operations --------

    def list_all_orders(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status_filter: str | None = None,
    ) -> list[OrderRead]:
        orders = self.order_repo.list_all(session, skip, limit, status_filter)
        return [self._load_order_dto(session, o) for o in orders]

    def get_order_admin(self, session: Session, order_id: uuid.UUID) -> OrderRead:
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )
        return self._load_order_dto(session, order)

    def upcoming_deliveries(
        self,
        session: Session,
        days: int = 7,
        today: date | None = None,
    ) -> list[OrderRead]:
        """
        Open orders whose delivery date falls in [today, today + days],
        soonest first.
        """
        start = today or date.today()
        end = start + timedelta(days=days)

        due = []
        for order in self.order_repo.list_for_delivery(
            session, exclude_statuses=("delivered", "cancelled")
        ):
            when = _delivery_date(order)
            if when is not None and start <= when <= end:
                due.append((when, order))

        due.sort(key=lambda pair: pair[0])
        return [self._load_order_dto(session, o) for _, o in due]

    def delivery_calendar(
        self,
        session: Session,
        year: int,
        month: int,
    ) -> list[DeliveryDay]:
        """
        Non-cancelled orders of one month grouped by delivery date.
        """
        by_day: dict[date, list[Order]] = {}
        for order in self.order_repo.list_for_delivery(session):
            when = _delivery_date(order)
            if when is not None and when.year == year and when.month == month:
                by_day.setdefault(when, []).append(order)

        return [
            DeliveryDay(
                delivery_date=day,
                order_count=len(orders),
                orders=[self._load_order_dto(session, o) for o in orders],
            )
            for day, orders in sorted(by_day.items())
        ]

    def update_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderStatusUpdate,
        updated_by: uuid.UUID | None = None,
    ) -> OrderRead:
        """
        Admin-only status update, see ALLOWED_TRANSITIONS.

        Any invalid transition raises 400. An unpaid Razorpay order can
        only be confirmed by its payment, never by hand.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )

        current = order.status
        new = payload.status

        if current == new:
            return self._load_order_dto(session, order)

        if new not in ALLOWED_TRANSITIONS.get(current, set()):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status transition: {current} -> {new}",
            )

        if (
            new == "confirmed"
            and order.payment_method == "razorpay"
            and order.razorpay_payment_id is None
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Razorpay order has no verified payment",
            )

        order.status = new
        order.updated_at = datetime.now(timezone.utc)
        self.order_repo.update_order(session, order)
        self._record_status(session, order, payload.message, updated_by)
        session.commit()
        session.refresh(order)
        logger.info("Order %s moved %s -> %s", order.order_number, current, new)
        return self._load_order_dto(session, order)

    # -------- Helpers --------

    def _ensure_owner(self, order: Order, user_id: uuid.UUID | None) -> None:
        if order.user_id != user_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )

    def _verify_or_400(self, payment: PaymentDetails) -> None:
        try:
            valid = verify_payment_signature(
                payment.order_id,
                payment.payment_id,
                payment.signature,
                self.key_secret,
            )
        except PaymentConfigError as e:
            logger.error("Cannot verify payment: %s", e)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error verifying payment",
            )
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            )

        if not valid:
            logger.warning("Rejected order for unverified payment %s", payment.payment_id)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Payment verification failed",
            )

    def _cancel_unpaid_drafts(self, session: Session, user_id: uuid.UUID) -> None:
        """A new checkout attempt replaces the user's abandoned ones."""
        for draft in self.order_repo.list_unpaid_drafts(session, user_id):
            draft.status = "cancelled"
            draft.updated_at = datetime.now(timezone.utc)
            self.order_repo.update_order(session, draft)
            self._record_status(
                session, draft, "Checkout abandoned; replaced by a new attempt"
            )
            logger.info("Cancelled unpaid draft %s", draft.order_number)

    def _record_status(
        self,
        session: Session,
        order: Order,
        message: str | None = None,
        updated_by: uuid.UUID | None = None,
    ) -> None:
        self.order_repo.add_status_event(
            session,
            OrderStatusEvent(
                order_id=order.id,
                status=order.status,
                message=message
                or STATUS_MESSAGES.get(order.status, f"Status updated to {order.status}"),
                updated_by=updated_by,
            ),
        )

    def _next_order_number(self, session: Session) -> str:
        now_ms = int(time.time() * 1000)
        order_number = make_order_number(now_ms)
        while self.order_repo.order_number_exists(session, order_number):
            now_ms += 1
            order_number = make_order_number(now_ms)
        return order_number

    def _write_order(
        self,
        session: Session,
        user_id: uuid.UUID | None,
        payload: OrderCreate,
        *,
        status_value: str,
        gateway_order_id: str | None = None,
        payment_id: str | None = None,
        signature: str | None = None,
    ) -> tuple[Order, list[OrderItem]]:
        """
        Insert Order + OrderItem rows and the first tracking entry, then
        commit.

        Unique-constraint violations (order number, payment id) roll back
        and surface as 409.
        """
        order = Order(
            order_number=self._next_order_number(session),
            user_id=user_id,
            shipping_details=payload.shipping_details.model_dump(mode="json"),
            gift_details=(
                payload.gift_details.model_dump(mode="json")
                if payload.gift_details
                else None
            ),
            payment_method=payload.payment_details.method,
            razorpay_order_id=gateway_order_id,
            razorpay_payment_id=payment_id,
            razorpay_signature=signature,
            total_amount=payload.total_amount,
            currency=payload.currency,
            currency_rate=payload.currency_rate,
            original_currency=payload.original_currency,
            status=status_value,
        )

        try:
            order = self.order_repo.create_order(session, order)
            items = self.order_repo.create_items(
                session,
                [
                    OrderItem(
                        order_id=order.id,
                        product_id=it.product,
                        title=it.title,
                        quantity=it.quantity,
                        unit_price=it.price,
                        final_price=(
                            it.final_price if it.final_price is not None else it.price
                        ),
                        customizations=it.customizations,
                        images=list(it.images),
                    )
                    for it in payload.items
                ],
            )
            self._record_status(session, order)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.error("Order write rejected: %s", e.orig)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Error creating order",
            )

        session.refresh(order)
        return order, items

    def _notify_confirmed(self, dto: OrderRead) -> None:
        if self.notifier is not None:
            self.notifier.order_confirmed(dto)

    def _load_order_dto(self, session: Session, order: Order) -> OrderRead:
        items = self.order_repo.list_items_for_order(session, order.id)
        events = self.order_repo.list_status_events(session, order.id)
        return self._build_order_dto(order, items, events)

    def _build_order_dto(
        self,
        order: Order,
        items: list[OrderItem],
        events: list[OrderStatusEvent] | None = None,
    ) -> OrderRead:
        """
        Compose OrderRead from ORM rows.
        """
        item_dtos = [
            OrderItemRead(
                id=it.id,
                product=it.product_id,
                title=it.title,
                quantity=it.quantity,
                price=it.unit_price,
                final_price=it.final_price,
                line_total=it.quantity * it.final_price,
                customizations=it.customizations,
                images=it.images or [],
            )
            for it in items
        ]

        history = [
            OrderStatusEventRead(
                status=ev.status,
                message=ev.message,
                updated_by=ev.updated_by,
                timestamp=ev.created_at,
            )
            for ev in events or []
        ]

        return OrderRead(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            shipping_details=ShippingDetails.model_validate(order.shipping_details),
            gift_details=(
                GiftDetails.model_validate(order.gift_details)
                if order.gift_details
                else None
            ),
            payment_details=PaymentDetailsRead(
                method=order.payment_method,
                order_id=order.razorpay_order_id,
                payment_id=order.razorpay_payment_id,
            ),
            items=item_dtos,
            total_amount=order.total_amount,
            currency=order.currency,
            currency_rate=order.currency_rate,
            original_currency=order.original_currency,
            status=order.status,
            tracking_history=history,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
