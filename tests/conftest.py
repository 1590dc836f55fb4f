from decimal import Decimal

import pytest

from app import create_app
from models import db
from services.errors import ProviderFailure


class FakeGateway:
    def __init__(self):
        self.intents = {}
        self.created = []
        self.refunds = []
        self.fail_refunds = False

    def create_intent(self, amount, currency, metadata):
        intent_id = f"pi_test_{len(self.created) + 1}"
        self.created.append({"id": intent_id, "amount": amount, "currency": currency, "metadata": metadata})
        self.intents[intent_id] = "requires_confirmation"
        return {
            "id": intent_id,
            "amount": Decimal(amount),
            "currency": currency,
            "client_secret": f"{intent_id}_secret",
            "status": "requires_confirmation",
        }

    def get_intent_status(self, intent_id):
        return self.intents[intent_id]

    def refund(self, intent_id, amount=None):
        if self.fail_refunds:
            raise ProviderFailure("Payment provider error while issuing refund")
        self.refunds.append((intent_id, amount))
        return {"id": f"re_test_{len(self.refunds)}", "amount": amount, "status": "succeeded"}


class FakeProvisioner:
    def __init__(self):
        self.issued = []
        self.fail = False

    def issue_token(self, channel_name, party_id, role="publisher"):
        if self.fail:
            raise ProviderFailure("Video provider error while issuing call token")
        self.issued.append((channel_name, party_id, role))
        return f"tok-{channel_name}-{party_id}"


class FakeRelay:
    def __init__(self):
        self.published = []

    def publish(self, recipient_user_id, event_name, payload):
        self.published.append((recipient_user_id, event_name, payload))
        return 1

    def events_for(self, user_id):
        return [event for recipient, event, _ in self.published if recipient == user_id]


TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "BCRYPT_ROUNDS": 4,
    "STRIPE_WEBHOOK_SECRET": "whsec_test",
}


@pytest.fixture
def app():
    app = create_app(TEST_CONFIG)
    app.extensions["payment_gateway"] = FakeGateway()
    app.extensions["video_provisioner"] = FakeProvisioner()
    app.extensions["notification_relay"] = FakeRelay()

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
def gateway(app):
    return app.extensions["payment_gateway"]


@pytest.fixture
def provisioner(app):
    return app.extensions["video_provisioner"]


@pytest.fixture
def relay(app):
    return app.extensions["notification_relay"]


def auth(party):
    return {"Authorization": f"Bearer {party['token']}"}


def register(client, email, user_type="customer", full_name=None):
    resp = client.post("/auth/register", json={
        "email": email,
        "password": "secret123",
        "full_name": full_name or email.split("@")[0].title(),
        "user_type": user_type,
    })
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    return {
        "token": body["token"],
        "id": body["user"]["id"],
        "developer_id": body["user"]["developer_id"],
    }


@pytest.fixture
def customer(client):
    return register(client, "carol@example.com", "customer", "Carol Customer")


@pytest.fixture
def developer(client):
    dev = register(client, "dave@example.com", "developer", "Dave Developer")
    resp = client.put(f"/developers/{dev['developer_id']}", json={"hourly_rate": 90}, headers=auth(dev))
    assert resp.status_code == 200
    return dev


def create_booking(client, customer, developer, duration=60):
    resp = client.post("/bookings", json={
        "developer_id": developer["developer_id"],
        "scheduled_at": "2026-11-01T10:00:00Z",
        "duration_minutes": duration,
    }, headers=auth(customer))
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["booking"]["id"]


def pay(client, gateway, customer, booking_id):
    resp = client.post("/payments/create-payment-intent", json={"booking_id": booking_id}, headers=auth(customer))
    assert resp.status_code == 200, resp.get_json()
    intent_id = resp.get_json()["paymentIntentId"]
    gateway.intents[intent_id] = "succeeded"

    resp = client.post("/payments/confirm-payment", json={
        "booking_id": booking_id,
        "payment_intent_id": intent_id,
    }, headers=auth(customer))
    assert resp.status_code == 200, resp.get_json()
    return intent_id


def advance(client, gateway, customer, developer, to_status, duration=60):
    """Create a booking and walk it forward to `to_status`."""
    booking_id = create_booking(client, customer, developer, duration)
    if to_status == "pending":
        return booking_id
    pay(client, gateway, customer, booking_id)
    assert client.put(f"/bookings/{booking_id}/confirm", headers=auth(customer)).status_code == 200
    if to_status == "confirmed":
        return booking_id
    assert client.put(f"/bookings/{booking_id}/start-call", headers=auth(developer)).status_code == 200
    if to_status == "in_progress":
        return booking_id
    resp = client.put(f"/bookings/{booking_id}/end-call", json={"actual_duration_minutes": duration},
                      headers=auth(customer))
    assert resp.status_code == 200
    return booking_id
