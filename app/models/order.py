# app/models/order.py
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class Order(SQLModel, table=True):
    """
    Customer order.

    Lifecycle:
      - created as 'pending' when the checkout draft is submitted together
        with the gateway order, or directly as 'confirmed' once a verified
        payment is posted
      - afterwards only `status` changes (fulfilment)
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    # ORD<unix-ms>
    order_number: str = Field(
        unique=True,
        index=True,
        description="Human-facing order number",
    )

    user_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        index=True,
    )

    # fullName, email, phone, address, apartment, city, state, zipCode,
    # notes, deliveryDate, timeSlot
    shipping_details: dict[str, Any] = Field(
        sa_column=Column(JSON, nullable=False),
    )

    gift_details: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )

    # razorpay | cash
    payment_method: str = Field(
        description="Payment method",
    )
    razorpay_order_id: str | None = Field(
        default=None,
        index=True,
        description="Gateway order id created for this checkout",
    )
    razorpay_payment_id: str | None = Field(
        default=None,
        unique=True,
        index=True,
        description="Gateway payment id; one order per payment",
    )
    razorpay_signature: str | None = None

    total_amount: float = Field(
        gt=0,
        description="Amount charged, in major currency units",
    )
    currency: str = Field(default="INR")
    currency_rate: float = Field(default=1.0)
    # currency the customer browsed in before conversion
    original_currency: str = Field(default="INR")

    # pending | confirmed | processing | shipped | delivered | cancelled
    status: str = Field(
        default="pending",
        index=True,
        description="Order status lifecycle",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class OrderItem(SQLModel, table=True):
    """
    Line item inside an order.

    `product_id` refers to the catalogue, which lives outside this service,
    so the title is snapshotted alongside the prices.
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    product_id: str = Field(
        index=True,
    )
    title: str | None = None

    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )

    unit_price: float = Field(
        description="Unit price at time of order",
    )
    final_price: float = Field(
        description="Unit price after customizations",
    )

    customizations: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
    images: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )


class OrderStatusEvent(SQLModel, table=True):
    """
    Tracking history entry.

    One row is written whenever an order is created or changes status;
    `updated_by` is set when an admin made the change.
    """

    __tablename__ = "order_status_events"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    status: str
    message: str

    updated_by: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )
