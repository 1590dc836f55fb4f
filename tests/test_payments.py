from decimal import Decimal

import pytest
import stripe

from conftest import advance, auth, create_booking, pay, register
from models import db
from models.audit_log import AuditLog
from models.booking import Booking
from models.developer_profile import DeveloperProfile
from models.payment import PaymentTransaction


def _intent(client, customer, booking_id, **extra):
    return client.post("/payments/create-payment-intent",
                       json=dict(extra, booking_id=booking_id), headers=auth(customer))


def test_create_payment_intent_for_booking_total(app, client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer, duration=45)

    resp = _intent(client, customer, booking_id)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["amount"] == "67.50"
    assert body["currency"] == "usd"
    assert body["clientSecret"] == f"{body['paymentIntentId']}_secret"
    assert body["cryptoAmount"] is None
    assert gateway.created[0]["metadata"] == {"booking_id": booking_id, "user_id": customer["id"]}

    with app.app_context():
        tx = db.session.get(PaymentTransaction, body["transactionId"])
        assert tx.status == "pending"
        assert tx.stripe_payment_intent_id == body["paymentIntentId"]


@pytest.mark.parametrize("method, currency, amount", [
    ("crypto_USDC", "USDC", "90.00000000"),
    ("crypto_eth", "ETH", "0.04950000"),
    ("crypto_BTC", "BTC", "0.00225000"),
])
def test_crypto_amount_is_recorded(client, customer, developer, method, currency, amount):
    booking_id = create_booking(client, customer, developer)
    body = _intent(client, customer, booking_id, payment_method=method).get_json()
    assert body["cryptoCurrency"] == currency
    assert body["cryptoAmount"] == amount


def test_retried_checkout_reuses_transaction(app, client, customer, developer):
    booking_id = create_booking(client, customer, developer)
    first = _intent(client, customer, booking_id).get_json()
    second = _intent(client, customer, booking_id).get_json()

    assert first["transactionId"] == second["transactionId"]
    assert first["paymentIntentId"] != second["paymentIntentId"]
    with app.app_context():
        assert PaymentTransaction.query.count() == 1


def test_only_the_customer_can_pay(client, customer, developer):
    booking_id = create_booking(client, customer, developer)
    assert _intent(client, developer, booking_id).status_code == 403
    assert _intent(client, customer, 999).status_code == 404


def test_cannot_pay_twice(client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer)
    pay(client, gateway, customer, booking_id)

    resp = _intent(client, customer, booking_id)
    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "invalid_transition"


def test_confirm_payment_marks_booking_paid(client, gateway, relay, customer, developer):
    booking_id = create_booking(client, customer, developer)
    intent_id = pay(client, gateway, customer, booking_id)

    booking = client.get(f"/bookings/{booking_id}", headers=auth(customer)).get_json()
    assert booking["payment_status"] == "completed"
    assert booking["status"] == "pending"
    assert booking["payment_transaction_id"] == intent_id
    assert "notification:payment-confirmed" in relay.events_for(developer["id"])


def test_confirm_payment_is_idempotent(client, gateway, relay, customer, developer):
    booking_id = create_booking(client, customer, developer)
    intent_id = pay(client, gateway, customer, booking_id)
    notified = len(relay.published)

    resp = client.post("/payments/confirm-payment", json={
        "booking_id": booking_id, "payment_intent_id": intent_id,
    }, headers=auth(customer))
    assert resp.status_code == 200
    assert len(relay.published) == notified


@pytest.mark.parametrize("status, tx_status", [
    ("requires_payment_method", "failed"),
    ("canceled", "failed"),
    ("processing", "pending"),
])
def test_unsuccessful_payment_leaves_booking_unpaid(app, client, gateway, customer, developer, status, tx_status):
    booking_id = create_booking(client, customer, developer)
    intent_id = _intent(client, customer, booking_id).get_json()["paymentIntentId"]
    gateway.intents[intent_id] = status

    resp = client.post("/payments/confirm-payment", json={
        "booking_id": booking_id, "payment_intent_id": intent_id,
    }, headers=auth(customer))
    assert resp.status_code == 400
    assert resp.get_json() == {"success": False, "message": "Payment failed", "status": status}

    with app.app_context():
        assert db.session.get(Booking, booking_id).payment_status == "pending"
        assert PaymentTransaction.query.filter_by(booking_id=booking_id).one().status == tx_status


def test_confirm_payment_with_unknown_intent(client, customer, developer):
    booking_id = create_booking(client, customer, developer)
    _intent(client, customer, booking_id)
    resp = client.post("/payments/confirm-payment", json={
        "booking_id": booking_id, "payment_intent_id": "pi_someone_else",
    }, headers=auth(customer))
    assert resp.status_code == 404


def test_partial_refund(app, client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer)
    intent_id = pay(client, gateway, customer, booking_id)

    resp = client.post("/payments/refund", json={"booking_id": booking_id, "refund_amount": 30},
                       headers=auth(customer))
    assert resp.status_code == 200
    assert resp.get_json()["refundAmount"] == "30.00"
    assert gateway.refunds == [(intent_id, Decimal("30.00"))]

    with app.app_context():
        tx = PaymentTransaction.query.filter_by(booking_id=booking_id).one()
        assert tx.status == "completed"
        assert str(tx.refunded_amount) == "30.00"
        booking = db.session.get(Booking, booking_id)
        assert booking.payment_status == "completed"
        assert str(booking.refund_amount) == "30.00"


def test_refund_defaults_to_full_amount(client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer)
    pay(client, gateway, customer, booking_id)

    resp = client.post("/payments/refund", json={"booking_id": booking_id}, headers=auth(customer))
    assert resp.get_json()["refundAmount"] == "90.00"
    assert client.put(f"/bookings/{booking_id}/confirm", headers=auth(customer)).status_code == 400


@pytest.mark.parametrize("amount", [0, -1, 500, "lots"])
def test_refund_amount_must_fit_payment(client, gateway, customer, developer, amount):
    booking_id = create_booking(client, customer, developer)
    pay(client, gateway, customer, booking_id)

    resp = client.post("/payments/refund", json={"booking_id": booking_id, "refund_amount": amount},
                       headers=auth(customer))
    assert resp.status_code == 400
    assert gateway.refunds == []


def test_refund_requires_completed_payment(client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer)
    _intent(client, customer, booking_id)

    resp = client.post("/payments/refund", json={"booking_id": booking_id}, headers=auth(customer))
    assert resp.status_code == 400


def test_refund_rejected_once_booking_is_confirmed(app, client, gateway, customer, developer):
    booking_id = advance(client, gateway, customer, developer, "confirmed")

    resp = client.post("/payments/refund", json={"booking_id": booking_id, "refund_amount": 30},
                       headers=auth(customer))
    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "invalid_transition"
    assert gateway.refunds == []

    with app.app_context():
        booking = db.session.get(Booking, booking_id)
        assert booking.payment_status == "completed"
        assert str(booking.refund_amount) == "0.00"


def test_partial_refund_comes_out_of_earnings(app, client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer)
    pay(client, gateway, customer, booking_id)
    client.post("/payments/refund", json={"booking_id": booking_id, "refund_amount": 30}, headers=auth(customer))

    assert client.put(f"/bookings/{booking_id}/confirm", headers=auth(customer)).status_code == 200
    assert client.put(f"/bookings/{booking_id}/start-call", headers=auth(developer)).status_code == 200
    resp = client.put(f"/bookings/{booking_id}/end-call", json={"actual_duration_minutes": 60},
                      headers=auth(developer))
    assert resp.status_code == 200
    assert resp.get_json()["developerEarnings"] == "60.00"

    with app.app_context():
        profile = db.session.get(DeveloperProfile, developer["developer_id"])
        assert str(profile.total_earnings) == "60.00"


def test_short_call_refund_is_capped_by_earlier_refund(app, client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer)
    intent_id = pay(client, gateway, customer, booking_id)
    client.post("/payments/refund", json={"booking_id": booking_id, "refund_amount": 30}, headers=auth(customer))
    client.put(f"/bookings/{booking_id}/confirm", headers=auth(customer))
    client.put(f"/bookings/{booking_id}/start-call", headers=auth(developer))

    body = client.put(f"/bookings/{booking_id}/end-call", json={"actual_duration_minutes": 0},
                      headers=auth(developer)).get_json()
    assert body["refundAmount"] == "60.00"
    assert body["developerEarnings"] == "0.00"
    assert body["booking"]["payment_status"] == "refunded"
    assert gateway.refunds == [(intent_id, Decimal("30.00")), (intent_id, Decimal("60.00"))]

    with app.app_context():
        booking = db.session.get(Booking, booking_id)
        assert str(booking.refund_amount) == "90.00"
        tx = PaymentTransaction.query.filter_by(booking_id=booking_id).one()
        assert (tx.status, str(tx.refunded_amount)) == ("refunded", "90.00")


def test_refund_provider_failure_rolls_back(app, client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer)
    pay(client, gateway, customer, booking_id)
    gateway.fail_refunds = True

    resp = client.post("/payments/refund", json={"booking_id": booking_id}, headers=auth(customer))
    assert resp.status_code == 502
    with app.app_context():
        assert db.session.get(Booking, booking_id).payment_status == "completed"


def test_transactions_are_private(client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer)
    pay(client, gateway, customer, booking_id)

    rows = client.get("/payments/transactions", headers=auth(customer)).get_json()
    assert len(rows) == 1
    assert rows[0]["status"] == "completed"
    assert rows[0]["amount"] == "90.00"

    tx_id = rows[0]["id"]
    assert client.get(f"/payments/transaction/{tx_id}", headers=auth(customer)).status_code == 200

    other = register(client, "eve@example.com")
    assert client.get("/payments/transactions", headers=auth(other)).get_json() == []
    assert client.get(f"/payments/transaction/{tx_id}", headers=auth(other)).status_code == 404


# ---------- webhook ----------

def _webhook_event(monkeypatch, event):
    def construct_event(payload, sig_header, secret):
        if sig_header != "good-signature" or secret != "whsec_test":
            raise stripe.SignatureVerificationError("bad signature", sig_header)
        return event
    monkeypatch.setattr(stripe.Webhook, "construct_event", construct_event)


def _post_webhook(client, signature="good-signature"):
    return client.post("/webhooks/stripe", data=b"{}", headers={"Stripe-Signature": signature})


def test_webhook_rejects_bad_signature(client, monkeypatch):
    _webhook_event(monkeypatch, {"type": "payment_intent.succeeded", "data": {"object": {}}})
    assert _post_webhook(client, "forged").status_code == 400


def test_webhook_marks_booking_paid(app, client, customer, developer, monkeypatch):
    booking_id = create_booking(client, customer, developer)
    intent_id = _intent(client, customer, booking_id).get_json()["paymentIntentId"]

    _webhook_event(monkeypatch, {
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": intent_id, "status": "succeeded"}},
    })
    assert _post_webhook(client).status_code == 200
    # provider retries the same event
    assert _post_webhook(client).status_code == 200

    with app.app_context():
        booking = db.session.get(Booking, booking_id)
        assert booking.payment_status == "completed"
        assert booking.payment_transaction_id == intent_id
        assert PaymentTransaction.query.filter_by(booking_id=booking_id).one().status == "completed"

    assert client.put(f"/bookings/{booking_id}/confirm", headers=auth(customer)).status_code == 200


def test_webhook_payment_failure(app, client, customer, developer, monkeypatch):
    booking_id = create_booking(client, customer, developer)
    intent_id = _intent(client, customer, booking_id).get_json()["paymentIntentId"]

    _webhook_event(monkeypatch, {
        "type": "payment_intent.payment_failed",
        "data": {"object": {"id": intent_id}},
    })
    assert _post_webhook(client).status_code == 200
    with app.app_context():
        assert PaymentTransaction.query.filter_by(booking_id=booking_id).one().status == "failed"
        assert db.session.get(Booking, booking_id).payment_status == "pending"


def test_webhook_ignores_unknown_intents_and_events(client, monkeypatch):
    _webhook_event(monkeypatch, {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_unknown"}}})
    assert _post_webhook(client).get_json() == {"received": True}

    _webhook_event(monkeypatch, {"type": "charge.refunded", "data": {"object": {}}})
    assert _post_webhook(client).get_json() == {"received": True}


def test_webhook_after_cancel_refunds_the_late_payment(app, client, gateway, relay, customer, developer, monkeypatch):
    booking_id = advance(client, gateway, customer, developer, "pending")
    intent_id = _intent(client, customer, booking_id).get_json()["paymentIntentId"]
    client.put(f"/bookings/{booking_id}/cancel", json={}, headers=auth(customer))

    _webhook_event(monkeypatch, {
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": intent_id, "status": "succeeded"}},
    })
    assert _post_webhook(client).status_code == 200
    # provider retries the same event
    assert _post_webhook(client).status_code == 200

    assert gateway.refunds == [(intent_id, None)]
    assert relay.events_for(customer["id"]).count("notification:payment-refunded") == 1

    with app.app_context():
        booking = db.session.get(Booking, booking_id)
        assert booking.status == "cancelled"
        assert booking.payment_status == "pending"
        tx = PaymentTransaction.query.filter_by(booking_id=booking_id).one()
        assert tx.status == "refunded"
        assert str(tx.refunded_amount) == "90.00"
        assert AuditLog.query.filter_by(action="PAYMENT_RETURNED").count() == 2


def test_confirm_payment_after_cancel_refunds(app, client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer)
    intent_id = _intent(client, customer, booking_id).get_json()["paymentIntentId"]
    client.put(f"/bookings/{booking_id}/cancel", json={}, headers=auth(customer))
    gateway.intents[intent_id] = "succeeded"

    for _ in range(2):
        resp = client.post("/payments/confirm-payment", json={
            "booking_id": booking_id, "payment_intent_id": intent_id,
        }, headers=auth(customer))
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "invalid_transition"

    assert gateway.refunds == [(intent_id, None)]
    with app.app_context():
        assert PaymentTransaction.query.filter_by(booking_id=booking_id).one().status == "refunded"
        assert db.session.get(Booking, booking_id).payment_status == "pending"


def test_late_payment_refund_failure_leaves_transaction_pending(app, client, gateway, customer, developer):
    booking_id = create_booking(client, customer, developer)
    intent_id = _intent(client, customer, booking_id).get_json()["paymentIntentId"]
    client.put(f"/bookings/{booking_id}/cancel", json={}, headers=auth(customer))
    gateway.intents[intent_id] = "succeeded"
    gateway.fail_refunds = True

    resp = client.post("/payments/confirm-payment", json={
        "booking_id": booking_id, "payment_intent_id": intent_id,
    }, headers=auth(customer))
    assert resp.status_code == 502
    with app.app_context():
        assert PaymentTransaction.query.filter_by(booking_id=booking_id).one().status == "pending"
