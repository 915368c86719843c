import hashlib
import hmac
import json
from datetime import datetime

import pytest

from conftest import make_owner, owner_headers
from core.config import settings
from main import app
from models import AppUser, Payment
from services.payment_gateway import describe_gateway_error, get_payment_gateway
from services.subscription_service import add_months, verify_signature
from sqlmodel import select

WEBHOOK_SECRET = "whsec_test"

class FakeGateway:
    def __init__(self, order=None, error=None):
        self.order = order
        self.error = error
        self.options = None

    def create_order(self, options):
        self.options = options
        if self.error:
            raise self.error
        return self.order

class GatewayError(Exception):
    def __init__(self, description):
        super().__init__("BAD_REQUEST_ERROR")
        self.error = {"code": "BAD_REQUEST_ERROR", "description": description}

@pytest.fixture
def gateway():
    fake = FakeGateway(order={"id": "order_123", "amount": 49900, "currency": "INR", "status": "created"})
    app.dependency_overrides[get_payment_gateway] = lambda: fake
    return fake

@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_WEBHOOK_SECRET", WEBHOOK_SECRET)
    return WEBHOOK_SECRET

def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

def test_missing_user_id_is_rejected(client, gateway):
    response = client.post("/api/razorpay", json={"amount": 100, "currency": "INR"})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required parameters: amount, currency, or userId"}
    assert gateway.options is None

def test_order_is_created_with_customer_notes(client, session, gateway):
    owner = make_owner(session)

    response = client.post("/api/razorpay", json={"amount": 49900, "currency": "INR", "userId": owner.uid})

    assert response.status_code == 200
    assert response.json()["id"] == "order_123"
    options = gateway.options
    assert options["amount"] == 49900
    assert options["currency"] == "INR"
    assert options["receipt"].startswith(f"sub_{owner.uid[:8]}_")
    assert options["notes"] == {
        "userId": owner.uid,
        "type": "subscription",
        "customer_name": "Asha Rao",
        "customer_email": "owner@example.com",
    }

def test_unknown_user_still_creates_order(client, gateway):
    response = client.post("/api/razorpay", json={"amount": 100, "currency": "INR", "userId": "nobody"})

    assert response.status_code == 200
    assert gateway.options["notes"] == {"userId": "nobody", "type": "subscription"}

def test_gateway_error_description_is_returned(client, gateway):
    gateway.error = GatewayError("The amount must be atleast INR 1.00")

    response = client.post("/api/razorpay", json={"amount": 1, "currency": "INR", "userId": "u1"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create Razorpay order.", "details": "The amount must be atleast INR 1.00"}

def test_empty_gateway_reply_is_an_error(client, gateway):
    gateway.order = None

    response = client.post("/api/razorpay", json={"amount": 100, "currency": "INR", "userId": "u1"})

    assert response.status_code == 500
    assert response.json() == {"error": "Razorpay failed to create an order."}

def test_unconfigured_gateway(client):
    app.dependency_overrides[get_payment_gateway] = lambda: None

    response = client.post("/api/razorpay", json={"amount": 100, "currency": "INR", "userId": "u1"})

    assert response.status_code == 500
    assert response.json()["error"] == "Razorpay keys are not configured"

def test_missing_params_are_rejected_before_gateway_keys_are_checked(client, monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", None)
    monkeypatch.setattr(settings, "RAZORPAY_KEY_SECRET", None)

    response = client.post("/api/razorpay", json={"amount": 100, "currency": "INR"})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required parameters: amount, currency, or userId"}

def test_describe_gateway_error_fallbacks():
    assert describe_gateway_error(GatewayError("bad currency")) == "bad currency"
    assert describe_gateway_error(RuntimeError("timeout")) == "timeout"
    assert describe_gateway_error(RuntimeError()) == "An unknown error occurred"

def test_webhook_requires_signature(client, webhook_secret):
    response = client.post("/api/razorpay-webhook", content=b"{}")

    assert response.status_code == 400
    assert response.json() == {"error": "Signature missing"}

def test_webhook_rejects_bad_signature(client, webhook_secret):
    response = client.post("/api/razorpay-webhook", content=b"{}", headers={"X-Razorpay-Signature": "deadbeef"})

    assert response.status_code == 403
    assert response.json() == {"error": "Invalid signature"}

def test_webhook_rejects_non_ascii_signature(client, webhook_secret):
    # Starlette decodes header bytes as latin-1
    response = client.post("/api/razorpay-webhook", content=b"{}", headers={"X-Razorpay-Signature": "caf\xe9".encode("latin-1")})

    assert response.status_code == 403
    assert response.json() == {"error": "Invalid signature"}

def test_verify_signature_handles_non_ascii_input():
    body = b'{"event":"payment.captured"}'

    assert verify_signature(body, sign(body), WEBHOOK_SECRET)
    assert not verify_signature(body, "sigñature", WEBHOOK_SECRET)
    assert not verify_signature(body, "\ud800", WEBHOOK_SECRET)

def test_webhook_without_secret_is_misconfigured(client, monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_WEBHOOK_SECRET", None)

    response = client.post("/api/razorpay-webhook", content=b"{}", headers={"X-Razorpay-Signature": "x"})

    assert response.status_code == 500

def test_captured_payment_activates_subscription(client, session, webhook_secret):
    owner = make_owner(session)
    event = {
        "event": "payment.captured",
        "payload": {"payment": {"entity": {
            "id": "pay_1",
            "order_id": "order_123",
            "amount": 49900,
            "currency": "INR",
            "status": "captured",
            "method": "upi",
            "created_at": 1767225600,
            "notes": {"userId": owner.uid, "type": "subscription"},
        }}},
    }
    body = json.dumps(event).encode()

    response = client.post("/api/razorpay-webhook", content=body, headers={"X-Razorpay-Signature": sign(body)})

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

    session.expire_all()
    user = session.exec(select(AppUser).where(AppUser.uid == owner.uid)).one()
    assert user.subscription_status == "active"
    assert user.subscription_ends_at == add_months(user.subscribed_at, 1)

    payment = session.exec(select(Payment).where(Payment.payment_id == "pay_1")).one()
    assert payment.amount == 499.0
    assert payment.user_uid == owner.uid
    assert payment.method == "upi"

def test_captured_payment_without_user_is_acknowledged(client, session, webhook_secret):
    event = {"event": "payment.captured", "payload": {"payment": {"entity": {"id": "pay_2", "notes": {}}}}}
    body = json.dumps(event).encode()

    response = client.post("/api/razorpay-webhook", content=body, headers={"X-Razorpay-Signature": sign(body)})

    assert response.status_code == 200
    assert session.exec(select(Payment)).all() == []

def test_malformed_webhook_body(client, webhook_secret):
    body = b"not json"

    response = client.post("/api/razorpay-webhook", content=body, headers={"X-Razorpay-Signature": sign(body)})

    assert response.status_code == 500
    assert response.json()["error"] == "Webhook handler failed"

def test_subscription_status_for_owner(client, session):
    owner = make_owner(session)

    response = client.get("/api/subscription", headers=owner_headers(owner))

    assert response.status_code == 200
    assert response.json()["status"] == "trial"

def test_add_months_clamps_to_month_end():
    assert add_months(datetime(2026, 1, 31, 9, 30), 1) == datetime(2026, 2, 28, 9, 30)
    assert add_months(datetime(2026, 12, 15), 1) == datetime(2027, 1, 15)
