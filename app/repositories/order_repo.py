# app/repositories/order_repo.py
import uuid

from sqlalchemy import or_
from sqlmodel import Session, select

from app.models.order import Order, OrderItem, OrderStatusEvent


def _not_unpaid_draft():
    """
    Excludes Razorpay checkout drafts that never received a payment.
    """
    return or_(
        Order.payment_method != "razorpay",
        Order.razorpay_payment_id.is_not(None),
    )


class OrderRepository:
    """
    Data access layer for orders, order_items and order_status_events.

    NOTE:
      - No commits here; order creation is a multi-step transaction.
        The service is responsible for calling session.commit().
    """

    # ---- Orders ----

    def list_for_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        """
        Orders placed by the user. Unpaid Razorpay drafts are left out.
        """
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .where(_not_unpaid_draft())
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return session.exec(stmt).all()

    def list_all(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[Order]:
        stmt = select(Order)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return session.exec(stmt).all()

    def list_for_delivery(
        self,
        session: Session,
        exclude_statuses: tuple[str, ...] = ("cancelled",),
    ) -> list[Order]:
        """
        Orders that can appear on the delivery schedule.

        The delivery date lives inside the shipping_details JSON, so date
        filtering is left to the caller.
        """
        stmt = (
            select(Order)
            .where(Order.status.not_in(exclude_statuses))
            .where(_not_unpaid_draft())
            .order_by(Order.created_at)
        )
        return session.exec(stmt).all()

    def list_unpaid_drafts(self, session: Session, user_id: uuid.UUID) -> list[Order]:
        stmt = select(Order).where(
            Order.user_id == user_id,
            Order.payment_method == "razorpay",
            Order.razorpay_payment_id.is_(None),
            Order.status == "pending",
        )
        return session.exec(stmt).all()

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def get_by_order_number(self, session: Session, order_number: str) -> Order | None:
        stmt = select(Order).where(Order.order_number == order_number)
        return session.exec(stmt).first()

    def get_by_payment_id(self, session: Session, payment_id: str) -> Order | None:
        stmt = select(Order).where(Order.razorpay_payment_id == payment_id)
        return session.exec(stmt).first()

    def get_by_gateway_order_id(
        self, session: Session, gateway_order_id: str
    ) -> Order | None:
        stmt = (
            select(Order)
            .where(Order.razorpay_order_id == gateway_order_id)
            .order_by(Order.created_at.desc())
        )
        return session.exec(stmt).first()

    def order_number_exists(self, session: Session, order_number: str) -> bool:
        return self.get_by_order_number(session, order_number) is not None

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing, but ensure id is populated.
        """
        session.add(order)
        session.flush()
        session.refresh(order)
        return order

    def update_order(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.flush()
        session.refresh(order)
        return order

    # ---- Order items ----

    def list_items_for_order(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> list[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_id)
        return session.exec(stmt).all()

    def create_items(
        self,
        session: Session,
        items: list[OrderItem],
    ) -> list[OrderItem]:
        session.add_all(items)
        session.flush()
        for item in items:
            session.refresh(item)
        return items

    # ---- Tracking history ----

    def add_status_event(
        self, session: Session, event: OrderStatusEvent
    ) -> OrderStatusEvent:
        session.add(event)
        session.flush()
        return event

    def list_status_events(
        self, session: Session, order_id: uuid.UUID
    ) -> list[OrderStatusEvent]:
        stmt = (
            select(OrderStatusEvent)
            .where(OrderStatusEvent.order_id == order_id)
            .order_by(OrderStatusEvent.created_at)
        )
        return session.exec(stmt).all()
