from decimal import Decimal, InvalidOperation

from flask import current_app

from integrations.notifications import notify
from integrations.payments import get_payment_gateway
from models import db
from models.booking import Booking
from models.payment import PaymentTransaction
from services import pricing
from services.errors import InvalidTransition, NotFound, ProviderFailure, Unauthorized, ValidationError
from services.lifecycle import load_booking, parse_int

# Stripe statuses after which the intent can no longer succeed without a new payment method
FAILED_INTENT_STATUSES = ("canceled", "requires_payment_method")

PAYMENT_RECORDED = "recorded"
PAYMENT_DUPLICATE = "duplicate"
PAYMENT_RETURNED = "returned"


def _customer_booking(caller_id: int, booking_id) -> Booking:
    booking = load_booking(parse_int(booking_id, "booking_id"))
    if booking.customer_user_id != caller_id:
        raise Unauthorized("Only the customer can pay for this booking")
    return booking


def _crypto_currency(payment_method):
    # e.g. "crypto_USDC"
    if payment_method and "crypto" in payment_method:
        parts = payment_method.split("_", 1)
        if len(parts) == 2 and parts[1]:
            return parts[1].upper()
    return None


def create_payment_intent(caller_id: int, booking_id, payment_method=None):
    booking = _customer_booking(caller_id, booking_id)
    if booking.status != "pending" or booking.payment_status != "pending":
        raise InvalidTransition("Booking is not awaiting payment")

    currency = current_app.config.get("PAYMENT_CURRENCY", "usd")
    intent = get_payment_gateway().create_intent(
        booking.total_amount,
        currency,
        {"booking_id": booking.id, "user_id": caller_id},
    )

    crypto_currency = _crypto_currency(payment_method)
    crypto_amount = pricing.convert_crypto(booking.total_amount, crypto_currency) if crypto_currency else None

    tx = PaymentTransaction.query.filter_by(booking_id=booking.id).first()
    if tx is None:
        tx = PaymentTransaction(booking_id=booking.id, user_id=caller_id)
        db.session.add(tx)

    # a retried checkout reuses the booking's single transaction row
    tx.amount = booking.total_amount
    tx.currency = currency
    tx.crypto_amount = crypto_amount
    tx.crypto_currency = crypto_currency
    tx.stripe_payment_intent_id = intent["id"]
    tx.status = "pending"
    db.session.commit()
    return tx, intent


def record_intent_status(tx: PaymentTransaction, status: str):
    """
    Apply a provider-reported intent status to the transaction and booking.

    Returns PAYMENT_RECORDED for the request that moved the booking to paid,
    PAYMENT_DUPLICATE when the booking already holds this payment,
    PAYMENT_RETURNED when the money arrived for a booking that no longer takes
    payment and was refunded, and None for every other status.
    """
    if status == "succeeded":
        changed = (
            Booking.query
            .filter(
                Booking.id == tx.booking_id,
                Booking.status == "pending",
                Booking.payment_status == "pending",
            )
            .update(
                {"payment_status": "completed", "payment_transaction_id": tx.stripe_payment_intent_id},
                synchronize_session=False,
            )
        )
        if not changed:
            return _settle_late_payment(tx)

        tx.status = "completed"
        db.session.commit()

        booking = db.session.get(Booking, tx.booking_id)
        payload = {"bookingId": booking.id, "amount": str(tx.amount)}
        notify(booking.customer_user_id, "notification:payment-confirmed", dict(
            payload, message="Payment confirmed. Waiting for the booking to be confirmed."))
        notify(booking.developer_user_id, "notification:payment-confirmed", dict(
            payload, message="Customer payment confirmed. Ready to start the call?"))
        return PAYMENT_RECORDED

    if status in FAILED_INTENT_STATUSES and tx.status == "pending":
        tx.status = "failed"
        db.session.commit()
    return None


def _settle_late_payment(tx: PaymentTransaction):
    booking = db.session.get(Booking, tx.booking_id)
    if booking.payment_transaction_id == tx.stripe_payment_intent_id:
        return PAYMENT_DUPLICATE

    # claim the transaction before refunding
    claimed = (
        PaymentTransaction.query
        .filter(PaymentTransaction.id == tx.id, PaymentTransaction.status.in_(("pending", "failed")))
        .update({"status": "refunded", "refunded_amount": tx.amount}, synchronize_session=False)
    )
    if not claimed:
        return PAYMENT_RETURNED

    try:
        get_payment_gateway().refund(tx.stripe_payment_intent_id)
    except ProviderFailure:
        db.session.rollback()
        raise
    db.session.commit()

    current_app.logger.warning(
        "Payment %s arrived for booking %s in state %s/%s, refunded in full",
        tx.stripe_payment_intent_id, booking.id, booking.status, booking.payment_status,
    )
    notify(booking.customer_user_id, "notification:payment-refunded", {
        "bookingId": booking.id,
        "amount": str(tx.amount),
        "message": "This booking is no longer open, so your payment was refunded.",
    })
    return PAYMENT_RETURNED


def confirm_payment(caller_id: int, booking_id, payment_intent_id: str):
    booking = _customer_booking(caller_id, booking_id)
    tx = PaymentTransaction.query.filter_by(booking_id=booking.id).first()
    if not tx or not payment_intent_id or tx.stripe_payment_intent_id != payment_intent_id:
        raise NotFound("Payment transaction not found")

    if booking.payment_status == "completed":
        return booking, "succeeded"
    if booking.payment_status == "refunded":
        raise InvalidTransition("Payment already refunded")

    status = get_payment_gateway().get_intent_status(payment_intent_id)
    if record_intent_status(tx, status) == PAYMENT_RETURNED:
        raise InvalidTransition("Booking is no longer awaiting payment; the payment was refunded")
    return booking, status


def refund_payment(caller_id: int, booking_id, amount=None) -> dict:
    booking = _customer_booking(caller_id, booking_id)
    tx = PaymentTransaction.query.filter_by(booking_id=booking.id).first()
    if not tx:
        raise NotFound("Payment transaction not found")
    if booking.payment_status != "completed":
        raise InvalidTransition("Only completed payments can be refunded")
    if booking.status != "pending":
        raise InvalidTransition("Cancel the booking to refund a confirmed session")

    remaining = pricing.to_money(tx.amount - tx.refunded_amount)
    if amount is None:
        refund = remaining
    else:
        try:
            refund = pricing.to_money(Decimal(str(amount)))
        except (InvalidOperation, ValueError):
            raise ValidationError("refund_amount must be a number")
        if refund <= 0 or refund > remaining:
            raise ValidationError(f"refund_amount must be between 0.01 and {remaining}")

    emptied = refund >= remaining
    changed = (
        Booking.query
        .filter(
            Booking.id == booking.id,
            Booking.status == "pending",
            Booking.payment_status == "completed",
            Booking.refund_amount == booking.refund_amount,
        )
        .update(
            {
                "payment_status": "refunded" if emptied else "completed",
                "refund_amount": pricing.to_money(booking.refund_amount + refund),
            },
            synchronize_session=False,
        )
    )
    if changed != 1:
        db.session.rollback()
        raise InvalidTransition("Payment was modified by another request; reload and retry")

    try:
        result = get_payment_gateway().refund(tx.stripe_payment_intent_id, refund)
    except ProviderFailure:
        db.session.rollback()
        raise

    tx.refunded_amount = pricing.to_money(tx.refunded_amount + refund)
    if emptied:
        tx.status = "refunded"
    db.session.commit()
    return {"refund_id": result.get("id"), "refund_amount": refund, "transaction": tx}


def list_transactions(caller_id: int):
    return (
        PaymentTransaction.query
        .filter_by(user_id=caller_id)
        .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
        .all()
    )


def get_transaction(caller_id: int, transaction_id: int) -> PaymentTransaction:
    tx = PaymentTransaction.query.filter_by(id=transaction_id, user_id=caller_id).first()
    if not tx:
        raise NotFound("Transaction not found")
    return tx


def transaction_for_intent(intent_id: str):
    if not intent_id:
        return None
    return PaymentTransaction.query.filter_by(stripe_payment_intent_id=intent_id).first()
