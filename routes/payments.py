from flask import Blueprint, request, jsonify, g

from services import payments
from services.wallet import get_wallet
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import money, transaction_to_dict, wallet_to_dict

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


@payments_bp.post("/create-payment-intent")
@login_required
def create_payment_intent():
    data = request.get_json(silent=True) or {}
    tx, intent = payments.create_payment_intent(g.user.id, data.get("booking_id"), data.get("payment_method"))

    log_event(
        "PAYMENT_INTENT_CREATED", user_id=g.user.id, entity="payment", entity_id=tx.id,
        metadata={"booking_id": tx.booking_id, "payment_intent_id": intent["id"]},
    )
    return jsonify(
        paymentIntentId=intent["id"],
        amount=money(intent["amount"]),
        currency=intent["currency"],
        transactionId=tx.id,
        cryptoAmount=str(tx.crypto_amount) if tx.crypto_amount is not None else None,
        cryptoCurrency=tx.crypto_currency,
        clientSecret=intent.get("client_secret"),
    ), 200


@payments_bp.post("/confirm-payment")
@login_required
def confirm_payment():
    data = request.get_json(silent=True) or {}
    booking, status = payments.confirm_payment(g.user.id, data.get("booking_id"), data.get("payment_intent_id"))

    if status == "succeeded":
        log_event("PAYMENT_COMPLETED", user_id=g.user.id, entity="booking", entity_id=booking.id)
        return jsonify(success=True, message="Payment successful", bookingId=booking.id), 200

    log_event(
        "PAYMENT_NOT_COMPLETED", user_id=g.user.id, entity="booking", entity_id=booking.id,
        metadata={"status": status},
    )
    return jsonify(success=False, message="Payment failed", status=status), 400


@payments_bp.get("/transactions")
@login_required
def list_transactions():
    rows = payments.list_transactions(g.user.id)
    return jsonify([transaction_to_dict(tx) for tx in rows]), 200


@payments_bp.get("/transaction/<int:transaction_id>")
@login_required
def get_transaction(transaction_id: int):
    tx = payments.get_transaction(g.user.id, transaction_id)
    return jsonify(transaction_to_dict(tx)), 200


@payments_bp.post("/refund")
@login_required
def refund():
    data = request.get_json(silent=True) or {}
    result = payments.refund_payment(g.user.id, data.get("booking_id"), data.get("refund_amount"))

    log_event(
        "REFUND_ISSUED", user_id=g.user.id, entity="payment", entity_id=result["transaction"].id,
        metadata={"refund_id": result["refund_id"], "amount": money(result["refund_amount"])},
    )
    return jsonify(
        success=True,
        message="Refund processed successfully",
        refundAmount=money(result["refund_amount"]),
        refundId=result["refund_id"],
    ), 200


@payments_bp.get("/wallet/balance")
@login_required
def wallet_balance():
    return jsonify(wallet_to_dict(get_wallet(g.user.id))), 200
