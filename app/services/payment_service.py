# app/services/payment_service.py
import logging

from fastapi import HTTPException, status
from sqlmodel import Session

from app.core.razorpay_client import GatewayError, RazorpayGateway
from app.core.signature import PaymentConfigError, verify_payment_signature
from app.models.user import User
from app.repositories.order_repo import OrderRepository
from app.schemas.payment import (
    GatewayOrderCreate,
    GatewayOrderRead,
    PaymentVerify,
    PaymentVerifyRead,
    to_minor_units,
)
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Razorpay round trip: gateway order creation and callback verification.

    Responsibilities:
      - map gateway/config errors to HTTP 500 and bad input to 400
      - store the checkout draft as a pending order before payment
      - promote the pending order once the callback signature verifies
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        order_service: OrderService,
        key_secret: str,
    ):
        self.order_repo = order_repo
        self.order_service = order_service
        self.key_secret = key_secret

    def create_gateway_order(
        self,
        session: Session,
        gateway: RazorpayGateway,
        user: User,
        payload: GatewayOrderCreate,
    ) -> GatewayOrderRead:
        """
        Create the Razorpay order for a checkout attempt.

        If the order draft is included, its total must match `amount`
        (in minor units) and it is persisted as 'pending'.
        """
        if payload.order is not None:
            expected = to_minor_units(payload.order.total_amount)
            if expected != int(round(payload.amount)):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=(
                        f"Amount {int(round(payload.amount))} does not match "
                        f"order total {expected}"
                    ),
                )

        notes = {"user_id": str(user.id)}
        if payload.receipt:
            notes["client_receipt"] = payload.receipt

        try:
            gateway_order = gateway.create_order(
                payload.amount, payload.currency, notes=notes
            )
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            )
        except (GatewayError, PaymentConfigError) as e:
            logger.error("Error creating Razorpay order: %s", e)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating order: {e}",
            )

        order_number = None
        if payload.order is not None:
            pending = self.order_service.create_pending_order(
                session, user.id, payload.order, gateway_order.id
            )
            order_number = pending.order_number

        return GatewayOrderRead(
            id=gateway_order.id,
            amount=gateway_order.amount,
            currency=gateway_order.currency,
            key=gateway.key_id,
            order_number=order_number,
        )

    def verify_payment(
        self,
        session: Session,
        user: User,
        payload: PaymentVerify,
    ) -> PaymentVerifyRead:
        """
        Check the checkout callback signature.

        A mismatch returns success=False and leaves every order untouched.
        On success the caller's pending order for this gateway order, if
        any, is confirmed and returned.
        """
        try:
            valid = verify_payment_signature(
                payload.razorpay_order_id,
                payload.razorpay_payment_id,
                payload.razorpay_signature,
                self.key_secret,
            )
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            )
        except PaymentConfigError as e:
            logger.error("Error verifying payment: %s", e)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error verifying payment",
            )

        if not valid:
            logger.warning(
                "Signature mismatch for gateway order %s", payload.razorpay_order_id
            )
            return PaymentVerifyRead(success=False)

        pending = self.order_repo.get_by_gateway_order_id(
            session, payload.razorpay_order_id
        )
        if pending is None or pending.user_id != user.id:
            return PaymentVerifyRead(success=True)

        # Draft replaced by a newer checkout; POST /orders records the payment
        if pending.status == "cancelled" and pending.razorpay_payment_id is None:
            return PaymentVerifyRead(success=True)

        order = self.order_service.confirm_gateway_payment(
            session,
            pending,
            payload.razorpay_payment_id,
            payload.razorpay_signature,
        )
        return PaymentVerifyRead(success=True, order=order)
