"""
Shared fixtures: an app on in-memory SQLite, seeded accounts/listings,
the CSRF handshake and a fake Stripe client.
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

import services.captcha as captcha_service
from app import create_app
from config import TestingConfig
from db import db
from models.product import Product
from models.user import User
from services.audit import MemoryAuditSink

CAPTCHA_TEXT = "K7PQZ"
PASSWORD = "correct-horse-battery"


@pytest.fixture
def app(monkeypatch):
    monkeypatch.setattr(captcha_service, "_random_text", lambda length: CAPTCHA_TEXT)
    app = create_app(TestingConfig)
    app.extensions["audit_sink"] = MemoryAuditSink()
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def audit_sink(app):
    return app.extensions["audit_sink"]


@pytest.fixture
def make_user(app):
    def _make(email="buyer@example.com", role="buyer", password=PASSWORD, mfa_secret=None):
        with app.app_context():
            user = User(
                name=email.split("@")[0],
                email=email,
                role=role,
                mfa_secret=mfa_secret,
                mfa_enabled=mfa_secret is not None,
            )
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make


@pytest.fixture
def seller_id(make_user):
    return make_user(email="seller@example.com", role="seller")


@pytest.fixture
def make_product(app, seller_id):
    def _make(name="Denim jacket", price="40.00", quantity=1, is_sold=False):
        with app.app_context():
            product = Product(
                name=name,
                description="test listing",
                price=Decimal(price),
                category="Clothing",
                condition="Good",
                quantity=quantity,
                is_sold=is_sold,
                is_approved=True,
                added_by=seller_id,
            )
            db.session.add(product)
            db.session.commit()
            return product.id
    return _make


def fetch(app, model, pk):
    """Fresh read of a row, bypassing any identity-map state."""
    with app.app_context():
        db.session.expire_all()
        obj = db.session.get(model, pk)
        if obj is not None:
            db.session.expunge(obj)
        return obj


def csrf_headers(client):
    token = client.get("/auth/csrf-token").get_json()["csrfToken"]
    return {"X-XSRF-TOKEN": token}


def login(client, email="buyer@example.com", password=PASSWORD, captcha=CAPTCHA_TEXT):
    client.get("/auth/captcha")
    return client.post(
        "/auth/login",
        json={"email": email, "password": password, "captcha": captcha},
        headers=csrf_headers(client),
    )


def post(client, url, payload=None):
    return client.post(url, json=payload or {}, headers=csrf_headers(client))


def session_cookie_set(resp) -> bool:
    return any(c.startswith("token=") for c in resp.headers.getlist("Set-Cookie"))


@pytest.fixture
def buyer_id(make_user):
    return make_user()


@pytest.fixture
def buyer_client(client, buyer_id):
    resp = login(client)
    assert resp.status_code == 200, resp.get_json()
    return client


# ---------- fake provider ----------

class FakePaymentIntents:
    def __init__(self):
        self.store = {}
        self.created = []
        self.fail_with = None

    def create(self, params=None):
        if self.fail_with:
            raise self.fail_with
        intent_id = f"pi_test_{len(self.store) + 1}"
        obj = SimpleNamespace(
            id=intent_id,
            client_secret=f"{intent_id}_secret_abc",
            amount=params["amount"],
            status="requires_payment_method",
            metadata=dict(params["metadata"]),
        )
        self.store[intent_id] = obj
        self.created.append(params)
        return obj

    def retrieve(self, intent_id, params=None):
        if self.fail_with:
            raise self.fail_with
        if intent_id not in self.store:
            raise stripe.InvalidRequestError(f"No such payment_intent: '{intent_id}'", "intent")
        return self.store[intent_id]

    def pay(self, intent_id):
        self.store[intent_id].status = "succeeded"


@pytest.fixture
def fake_stripe(app):
    from services.payments import StripeBackend

    intents = FakePaymentIntents()
    app.extensions["payment_backend"] = StripeBackend(SimpleNamespace(payment_intents=intents))
    return intents
