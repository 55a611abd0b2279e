# app/schemas/order.py
import uuid
from datetime import date, datetime
from typing import Any, Literal

from pydantic import ConfigDict, EmailStr, field_validator
from pydantic.alias_generators import to_camel
from sqlmodel import SQLModel, Field

PaymentMethod = Literal["razorpay", "cash"]
Currency = Literal["INR", "USD", "EUR", "GBP"]
OrderStatus = Literal[
    "pending", "confirmed", "processing", "shipped", "delivered", "cancelled"
]


class CamelModel(SQLModel):
    """
    Order API models speak camelCase on the wire (shippingDetails,
    totalAmount, ...) and accept snake_case field names too.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShippingDetails(CamelModel):
    """
    Delivery address and slot.

    Validation rules:
      - email must be a valid EmailStr (confirmation mails go there)
      - name, phone and address lines cannot be empty or whitespace
    """

    full_name: str
    email: EmailStr
    phone: str
    address: str
    apartment: str | None = None
    city: str
    state: str
    zip_code: str
    notes: str | None = None
    delivery_date: date | None = None
    time_slot: str | None = None

    @field_validator("full_name", "phone", "address", "city", "state", "zip_code")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class GiftDetails(CamelModel):
    message: str | None = None
    recipient_name: str | None = None
    recipient_email: EmailStr | None = None
    recipient_phone: str | None = None
    recipient_address: str | None = None
    recipient_apartment: str | None = None
    recipient_city: str | None = None
    recipient_state: str | None = None
    recipient_zip_code: str | None = None


class OrderItemCreate(CamelModel):
    """
    One cart line. `product` is the catalogue id.
    """

    product: str = Field(min_length=1)
    title: str | None = None
    quantity: int = Field(gt=0)
    price: float = Field(ge=0)
    final_price: float | None = Field(default=None, ge=0)
    customizations: dict[str, Any] | None = None
    images: list[str] = Field(default_factory=list)


class PaymentDetails(CamelModel):
    """
    Payment block of an order.

    For `razorpay` all three gateway fields come from the checkout
    callback; `order_id` is the gateway order id, not the order number.
    """

    method: PaymentMethod
    order_id: str | None = None
    payment_id: str | None = None
    signature: str | None = None


class OrderCreate(CamelModel):
    """
    Payload for persisting an order at checkout.

    Backend derives:
      - order_number
      - status ('confirmed' for verified gateway payments, else 'pending')
      - user_id from token
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    shipping_details: ShippingDetails
    items: list[OrderItemCreate] = Field(min_length=1)
    payment_details: PaymentDetails
    total_amount: float = Field(gt=0)
    gift_details: GiftDetails | None = None
    currency: Currency = "INR"
    currency_rate: float = Field(default=1.0, gt=0)
    original_currency: Currency = "INR"


class OrderItemRead(CamelModel):
    id: uuid.UUID
    product: str
    title: str | None
    quantity: int
    price: float
    final_price: float
    line_total: float
    customizations: dict[str, Any] | None = None
    images: list[str] = Field(default_factory=list)


class PaymentDetailsRead(CamelModel):
    method: PaymentMethod
    order_id: str | None = None
    payment_id: str | None = None


class OrderStatusEventRead(CamelModel):
    status: OrderStatus
    message: str
    updated_by: uuid.UUID | None = None
    timestamp: datetime


class OrderRead(CamelModel):
    """
    Full order view including items and tracking history (oldest first).
    """

    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID | None
    shipping_details: ShippingDetails
    gift_details: GiftDetails | None
    payment_details: PaymentDetailsRead
    items: list[OrderItemRead]
    total_amount: float
    currency: str
    currency_rate: float = 1.0
    original_currency: str = "INR"
    status: OrderStatus
    tracking_history: list[OrderStatusEventRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class OrderCreateResponse(CamelModel):
    success: bool = True
    order: OrderRead


class OrderStatusUpdate(CamelModel):
    """
    Admin payload to change order status.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    status: OrderStatus
    message: str | None = None


class DeliveryDay(CamelModel):
    """Orders due on one delivery date (admin calendar)."""

    delivery_date: date
    order_count: int
    orders: list[OrderRead]
