import stripe
from flask import Blueprint, request, jsonify, current_app

from services.payments import PAYMENT_RECORDED, PAYMENT_RETURNED, record_intent_status, transaction_for_intent
from utils.audit import log_event

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")

HANDLED_EVENTS = {
    "payment_intent.succeeded": "succeeded",
    "payment_intent.payment_failed": "requires_payment_method",
    "payment_intent.canceled": "canceled",
}


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.get_data()

    if not endpoint_secret:
        return jsonify(error="Webhook secret not configured"), 500

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, endpoint_secret)
    except (ValueError, stripe.SignatureVerificationError):
        return jsonify(error="Invalid webhook signature"), 400

    event_type = event["type"]
    if event_type not in HANDLED_EVENTS:
        return jsonify(received=True), 200

    intent = event["data"]["object"]
    tx = transaction_for_intent(intent.get("id"))
    if not tx:
        # intent replaced by a newer checkout, or not ours
        return jsonify(received=True), 200

    status = intent.get("status") or HANDLED_EVENTS[event_type]
    outcome = record_intent_status(tx, status)
    action = {PAYMENT_RECORDED: "PAYMENT_COMPLETED", PAYMENT_RETURNED: "PAYMENT_RETURNED"}.get(outcome, "PAYMENT_WEBHOOK")
    log_event(
        action,
        user_id=None, entity="payment", entity_id=tx.id,
        metadata={"event": event_type, "status": status, "booking_id": tx.booking_id},
    )
    return jsonify(received=True), 200
