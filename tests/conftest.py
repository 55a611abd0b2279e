import os

# Settings are read on import of the app modules.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_AbCdEfGhIjKl"
os.environ["RAZORPAY_KEY_SECRET"] = "TestSecretAbcdefgh12345678"
os.environ.pop("SMTP_HOST", None)

import uuid  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from app.core.auth import create_access_token  # noqa: E402
from app.core.razorpay_client import RazorpayGateway, get_gateway  # noqa: E402
from app.core.signature import generate_signature  # noqa: E402
from app.database import get_session  # noqa: E402
from app.main import app  # noqa: E402
from app.models.user import User  # noqa: E402

KEY_ID = os.environ["RAZORPAY_KEY_ID"]
KEY_SECRET = os.environ["RAZORPAY_KEY_SECRET"]


class FakeOrders:
    """Records `order.create` calls the way the SDK resource is used."""

    def __init__(self):
        self.calls: list[dict] = []
        self.error: Exception | None = None

    def create(self, data):
        self.calls.append(data)
        if self.error is not None:
            raise self.error
        return {
            "id": f"order_Fake{len(self.calls):06d}",
            "entity": "order",
            "amount": data["amount"],
            "currency": data["currency"],
            "receipt": data["receipt"],
            "status": "created",
        }


class FakeRazorpayClient:
    def __init__(self):
        self.order = FakeOrders()


def sign(order_id: str, payment_id: str) -> str:
    return generate_signature(order_id, payment_id, KEY_SECRET)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def razorpay_sdk():
    return FakeRazorpayClient()


@pytest.fixture
def gateway(razorpay_sdk):
    return RazorpayGateway(razorpay_sdk, KEY_ID, KEY_SECRET)


@pytest.fixture
def client(session, gateway):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def api(client):
    """TestClient rooted at the versioned API prefix."""
    return TestClient(app, base_url="http://testserver/api/v1")


def _make_user(session: Session, role: str) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{role}-{uuid.uuid4().hex[:6]}@example.com",
        name=role,
        role=role,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def customer(session):
    return _make_user(session, "user")


@pytest.fixture
def admin(session):
    return _make_user(session, "admin")


@pytest.fixture
def customer_headers(customer):
    return {"Authorization": f"Bearer {create_access_token(customer.id, customer.email)}"}


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {create_access_token(admin.id, admin.email)}"}


@pytest.fixture
def order_payload():
    return {
        "shippingDetails": {
            "fullName": "Asha Rao",
            "email": "asha@example.com",
            "phone": "9876543210",
            "address": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "zipCode": "560001",
            "deliveryDate": "2026-10-25",
            "timeSlot": "10:00-12:00",
        },
        "items": [
            {"product": "prod-roses", "title": "Red Roses", "quantity": 2, "price": 250.0},
        ],
        "paymentDetails": {"method": "razorpay"},
        "totalAmount": 500.0,
        "giftDetails": {"message": "Happy birthday!", "recipientName": "Meera"},
    }
