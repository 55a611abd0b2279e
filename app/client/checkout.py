# app/client/checkout.py
import logging
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import BaseModel

from app.client.cart_store import CartItem, CartStore
from app.schemas.order import (
    Currency,
    GiftDetails,
    OrderCreate,
    OrderItemCreate,
    PaymentDetails,
    ShippingDetails,
)
from app.schemas.payment import to_minor_units

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """
    Checkout could not finish. When the gateway ids are set the customer
    may already have paid; `CheckoutClient.complete` can be called again
    with the same callback.
    """

    def __init__(
        self,
        message: str,
        gateway_order_id: str | None = None,
        payment_id: str | None = None,
    ):
        super().__init__(message)
        self.gateway_order_id = gateway_order_id
        self.payment_id = payment_id


class PaymentCancelledError(CheckoutError):
    pass


class PaymentVerificationError(CheckoutError):
    pass


class PendingCheckout(BaseModel):
    """Gateway order waiting for the customer to pay."""

    gateway_order_id: str
    amount: int
    currency: str
    key: str
    order_number: str | None = None
    order: OrderCreate


class GatewayCallback(BaseModel):
    """Fields the hosted checkout hands back on success."""

    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


# Stands in for the hosted payment page: returns the callback, or None if
# the customer closed it.
PaymentHandler = Callable[[PendingCheckout], GatewayCallback | None]


def build_order(
    items: list[CartItem],
    shipping: ShippingDetails,
    gift: GiftDetails | None = None,
    currency: Currency = "INR",
) -> OrderCreate:
    """
    Order payload for the cart contents. The total is the cart subtotal.
    """
    total = round(sum(it.price * it.quantity for it in items), 2)
    return OrderCreate(
        shipping_details=shipping,
        items=[
            OrderItemCreate(
                product=it.id,
                title=it.title,
                quantity=it.quantity,
                price=it.price,
                final_price=it.price,
                customizations=it.customizations,
                images=it.images,
            )
            for it in items
        ],
        payment_details=PaymentDetails(method="razorpay"),
        total_amount=total,
        gift_details=gift,
        currency=currency,
    )


class CheckoutClient:
    """
    Drives checkout against the API.

    Order of calls: create-razorpay-order (stores a pending order) →
    hosted payment → verify-payment → POST /orders (idempotent per
    payment id) → clear cart.

    `http` is an httpx.Client whose base_url ends with the API prefix,
    e.g. http://localhost:8000/api/v1.
    """

    def __init__(self, http: httpx.Client, carts: CartStore, token: str):
        self.http = http
        self.carts = carts
        self.headers = {"Authorization": f"Bearer {token}"}

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        response = self.http.post(path, json=body, headers=self.headers)
        response.raise_for_status()
        return response.json()

    def start(
        self,
        user_id: str,
        shipping: ShippingDetails,
        gift: GiftDetails | None = None,
        currency: Currency = "INR",
    ) -> PendingCheckout:
        items = self.carts.load(user_id)
        if not items:
            raise CheckoutError("Cart is empty")

        order = build_order(items, shipping, gift, currency)
        body = {
            "amount": to_minor_units(order.total_amount),
            "currency": currency,
            "order": order.model_dump(mode="json", by_alias=True, exclude_none=True),
        }
        try:
            data = self._post("orders/create-razorpay-order", body)
        except httpx.HTTPError as e:
            raise CheckoutError(f"Could not create payment order: {e}") from e

        logger.info("Gateway order %s created", data["id"])
        return PendingCheckout(
            gateway_order_id=data["id"],
            amount=data["amount"],
            currency=data["currency"],
            key=data["key"],
            order_number=data.get("orderNumber"),
            order=order,
        )

    def complete(
        self,
        user_id: str,
        pending: PendingCheckout,
        callback: GatewayCallback,
    ) -> dict[str, Any]:
        """
        Verify the payment and persist the order.

        Raises:
            PaymentVerificationError: the signature did not verify; nothing
                was persisted.
            CheckoutError: the order could not be saved after a verified
                payment. Safe to retry.
        """
        ids = {
            "gateway_order_id": callback.razorpay_order_id,
            "payment_id": callback.razorpay_payment_id,
        }
        try:
            verification = self._post("orders/verify-payment", callback.model_dump())
        except httpx.HTTPError as e:
            raise PaymentVerificationError(f"Payment verification failed: {e}", **ids) from e
        if not verification.get("success"):
            raise PaymentVerificationError("Payment verification failed", **ids)

        order = pending.order.model_copy(
            update={
                "payment_details": PaymentDetails(
                    method="razorpay",
                    order_id=callback.razorpay_order_id,
                    payment_id=callback.razorpay_payment_id,
                    signature=callback.razorpay_signature,
                )
            }
        )
        try:
            data = self._post(
                "orders",
                order.model_dump(mode="json", by_alias=True, exclude_none=True),
            )
        except httpx.HTTPError as e:
            logger.error(
                "Payment %s verified but order not saved: %s",
                callback.razorpay_payment_id,
                e,
            )
            raise CheckoutError("Payment received but the order was not saved", **ids) from e

        self.carts.clear(user_id)
        logger.info("Order %s confirmed", data["order"]["orderNumber"])
        return data["order"]

    def checkout(
        self,
        user_id: str,
        shipping: ShippingDetails,
        pay: PaymentHandler,
        gift: GiftDetails | None = None,
    ) -> dict[str, Any]:
        pending = self.start(user_id, shipping, gift)
        callback = pay(pending)
        if callback is None:
            raise PaymentCancelledError(
                "Payment was cancelled", gateway_order_id=pending.gateway_order_id
            )
        return self.complete(user_id, pending, callback)
