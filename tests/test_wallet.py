from decimal import Decimal

from conftest import advance, auth, register
from models import db
from models.wallet import WalletBalance
from services.wallet import credit_wallet


def _balance(client, party):
    resp = client.get("/payments/wallet/balance", headers=auth(party))
    assert resp.status_code == 200
    return resp.get_json()


def test_every_user_starts_with_an_empty_wallet(client, customer, developer):
    for party in (customer, developer):
        body = _balance(client, party)
        assert body["user_id"] == party["id"]
        assert body["balance"] == "0.00"
        assert body["currency"] == "USDC"
        assert body["last_updated"] is not None


def test_wallet_requires_authentication(client):
    assert client.get("/payments/wallet/balance").status_code == 401


def test_completed_call_credits_developer_wallet(client, gateway, customer, developer):
    advance(client, gateway, customer, developer, "completed", duration=45)
    advance(client, gateway, customer, developer, "completed", duration=60)

    assert _balance(client, developer)["balance"] == "157.50"
    assert _balance(client, customer)["balance"] == "0.00"


def test_short_call_credits_only_what_was_earned(client, gateway, customer, developer):
    booking_id = advance(client, gateway, customer, developer, "in_progress")
    client.put(f"/bookings/{booking_id}/end-call", json={"actual_duration_minutes": 45}, headers=auth(developer))

    assert _balance(client, developer)["balance"] == "67.50"


def test_refund_failure_credits_nothing(client, gateway, customer, developer):
    booking_id = advance(client, gateway, customer, developer, "in_progress")
    gateway.fail_refunds = True

    resp = client.put(f"/bookings/{booking_id}/end-call", json={"actual_duration_minutes": 30},
                      headers=auth(developer))
    assert resp.status_code == 502
    assert _balance(client, developer)["balance"] == "0.00"


def test_me_includes_wallet(client):
    carol = register(client, "carol@example.com")
    body = client.get("/auth/me", headers=auth(carol)).get_json()
    assert body["wallet"]["balance"] == "0.00"


def test_credit_creates_missing_wallet(app, customer):
    with app.app_context():
        WalletBalance.query.filter_by(user_id=customer["id"]).delete()
        credit_wallet(customer["id"], Decimal("12.345"))
        credit_wallet(customer["id"], 0)
        db.session.commit()

        assert str(WalletBalance.query.filter_by(user_id=customer["id"]).one().balance) == "12.35"
