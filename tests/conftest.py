"""Pytest fixtures for storefront tests."""

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone

# Settings are read at import time, so the environment must be ready first
_TMP_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret-with-enough-length-000"
os.environ["AUTH_JWT_ISSUER"] = ""
os.environ["ADMIN_EMAILS"] = "admin@example.com"
os.environ["CURRENCY"] = "USD"
os.environ["SHIPPING_FLAT_FEE"] = "10.00"
os.environ["FREE_SHIPPING_THRESHOLD"] = "100.00"
os.environ["TAX_RATE"] = "0.10"
os.environ["PAYMENT_METHODS"] = "PayPal,Card,CashOnDelivery"
os.environ["DODO_WEBHOOK_SECRET"] = "whsec_MfKQ9r8GKYqrTwjUPD8ILPZIo2LaLaSw"
os.environ["DODO_API_KEY"] = "dodo-test-key"
os.environ["DODO_ADHOC_PRODUCT_ID"] = "pdt_adhoc"
os.environ["PAYPAL_CLIENT_ID"] = "paypal-client"
os.environ["PAYPAL_APP_SECRET"] = "paypal-secret"
os.environ["SMTP_HOST"] = ""

import jwt
import pytest
from fastapi.testclient import TestClient
from standardwebhooks import Webhook

from core.database import Base, SessionLocal, engine, get_db, init_db
from models.product import Product
from models.user import User
from utils.cart_store import CartOwner, add_item, get_cart, snapshot
from utils.checkout import place_order
from utils.payments import CaptureResult, PaymentGateway, ProviderOrder

WEBHOOK_SECRET = os.environ["DODO_WEBHOOK_SECRET"]
ADDRESS = {
    "fullName": "Jane Doe",
    "streetAddress": "123 Main St",
    "city": "Springfield",
    "postalCode": "12345",
    "country": "USA",
}


@pytest.fixture
def db():
    """Fresh schema and a session per test."""
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    from main import app

    def _get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_token(uid: str, email: str = "", name: str = "", expires_in: int = 3600) -> str:
    claims = {"sub": uid, "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in)}
    if email:
        claims["email"] = email
    if name:
        claims["name"] = name
    return jwt.encode(claims, os.environ["AUTH_JWT_SECRET"], algorithm="HS256")


def auth_headers(uid: str, **claims) -> dict:
    return {"Authorization": f"Bearer {make_token(uid, **claims)}"}


def make_user(db, uid="user-1", email="jane@example.com", role="user", address=ADDRESS, payment_method="PayPal"):
    user = User(id=uid, name="Jane", email=email, role=role, address=address, payment_method=payment_method)
    db.add(user)
    db.commit()
    return user


def make_product(db, slug="shirt", price_cents=2500, stock=10, name=None):
    product = Product(name=name or slug.title(), slug=slug, image=f"/images/{slug}.jpg", price_cents=price_cents, stock=stock)
    db.add(product)
    db.commit()
    return product


def place_test_order(db, user, lines, payment_method=None):
    """Fill the user's cart with (product, qty) pairs and place an order; returns the order id."""
    owner = CartOwner.for_user(user.id)
    for product, qty in lines:
        assert add_item(db, owner, product.id, qty).success
    result = place_order(
        db,
        user_id=user.id,
        cart=snapshot(get_cart(db, owner)),
        shipping_address=user.address,
        payment_method=payment_method or user.payment_method,
    )
    assert result.success, result.message
    return result.data["order_id"]


class FakeGateway(PaymentGateway):
    """Two-phase gateway that records calls instead of talking to a provider."""

    name = "fake"
    success_statuses = frozenset({"COMPLETED"})

    def __init__(self, status="COMPLETED", amount_cents=None, capture_order_id=None):
        super().__init__()
        self.status = status
        self.amount_cents = amount_cents
        self.capture_order_id = capture_order_id
        self.created = []
        self.captured = []

    async def create_order(self, amount_cents, currency, reference):
        self.created.append((amount_cents, currency, reference))
        return ProviderOrder(id=f"PP-{reference[:8]}", approve_url=f"https://pay.example/approve/{reference}")

    async def capture(self, provider_order_id):
        self.captured.append(provider_order_id)
        order_id = self.capture_order_id or provider_order_id
        return CaptureResult(
            id=order_id,
            status=self.status,
            provider_order_id=order_id,
            payer_email="buyer@example.com",
            amount_cents=self.amount_cents,
            currency="USD",
        )


@pytest.fixture
def gateway():
    return FakeGateway()


def signed_webhook(payload: dict, secret: str = WEBHOOK_SECRET):
    """Body and Standard Webhooks headers for a card provider event."""
    body = json.dumps(payload)
    msg_id = "msg_2Lb8JmqEQ1tWq3BRhQSZSd2cl4s"
    now = datetime.now(timezone.utc)
    headers = {
        "webhook-id": msg_id,
        "webhook-timestamp": str(int(now.timestamp())),
        "webhook-signature": Webhook(secret).sign(msg_id, now, body),
    }
    return body.encode(), headers
