# app/schemas/payment.py
from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from app.schemas.order import OrderCreate, OrderRead


def to_minor_units(amount: float) -> int:
    """Major currency units to paise/cents."""
    return int(round(amount * 100))


class GatewayOrderCreate(SQLModel):
    """
    Body of POST /orders/create-razorpay-order.

    `amount` is already in the smallest currency unit (paise). When the
    checkout draft is sent along as `order`, it is stored as a pending
    order tied to the gateway order before the customer pays.
    """

    amount: float = Field(gt=0)
    currency: str = Field(default="INR", min_length=3, max_length=3)
    receipt: str | None = None
    order: OrderCreate | None = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class GatewayOrderRead(SQLModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    id: str
    amount: int
    currency: str
    key: str
    order_number: str | None = Field(default=None, alias="orderNumber")


class PaymentVerify(SQLModel):
    """
    Checkout callback fields. Kept optional so that a missing field
    produces the verifier's 400 message rather than a schema error.
    """

    razorpay_order_id: str | None = None
    razorpay_payment_id: str | None = None
    razorpay_signature: str | None = None


class PaymentVerifyRead(SQLModel):
    success: bool
    order: OrderRead | None = None
