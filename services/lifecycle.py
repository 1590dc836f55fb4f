"""
Booking lifecycle: create -> pay -> confirm -> start call -> end call, or cancel.

Every transition follows the same shape:

  1. load the booking and check who is asking and whether the move is legal,
  2. make any provider call whose failure must stop the transition,
  3. flip the status with a conditional UPDATE (compare-and-swap on the
     status we just read) so two concurrent requests cannot both win,
  4. commit every write of the transition together,
  5. tell both parties, best effort, after the commit.

A provider failure after step 3 rolls the whole transition back.
"""
import json
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from integrations.notifications import notify
from integrations.payments import get_payment_gateway
from integrations.video import generate_channel_name, get_video_provisioner
from models import db
from models.booking import Booking
from models.call_session import CallSession
from models.developer_profile import DeveloperProfile
from models.payment import PaymentTransaction
from services import pricing
from services.errors import InvalidTransition, NotFound, ProviderFailure, Unauthorized, ValidationError
from services.wallet import credit_wallet


# ---------- helpers ----------

def parse_datetime(value) -> datetime:
    """ISO 8601 string (or datetime) to naive UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError("Invalid datetime format. Use ISO e.g. 2026-01-20T18:00:00")
    else:
        raise ValidationError("scheduled_at is required")

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_int(value, field: str, minimum=None) -> int:
    # JSON true/false are ints in Python; reject them explicitly
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, str):
        value = value.strip()
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return number


def load_booking(booking_id) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    return booking


def _require_party(booking: Booking, user_id: int) -> None:
    if not booking.is_party(user_id):
        raise Unauthorized("Not a party to this booking")


def _swap_status(booking_id: int, expected_status: str, values: dict, *criteria) -> None:
    changed = (
        Booking.query
        .filter(Booking.id == booking_id, Booking.status == expected_status, *criteria)
        .update(values, synchronize_session=False)
    )
    if changed != 1:
        db.session.rollback()
        raise InvalidTransition("Booking was modified by another request; reload and retry")


def _commit() -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise InvalidTransition("Booking was modified by another request; reload and retry")


def _transaction_for(booking_id: int):
    return PaymentTransaction.query.filter_by(booking_id=booking_id).first()


def issue_gateway_refund(booking: Booking, amount, full: bool = False):
    """
    Refund `amount` of the booking's captured payment inside the current DB
    transaction. Returns the amount actually refunded.

    Once nothing is left to refund, the booking is marked refunded as well.
    The caller owns the commit; on ProviderFailure the session is rolled back.
    """
    tx = _transaction_for(booking.id)
    if booking.payment_status != "completed" or tx is None or not tx.stripe_payment_intent_id:
        current_app.logger.info("Booking %s has no captured payment, refund of %s not executed", booking.id, amount)
        return pricing.to_money(0)

    remaining = pricing.to_money(tx.amount - tx.refunded_amount)
    amount = min(pricing.to_money(amount), remaining)
    if amount <= 0:
        return pricing.to_money(0)

    try:
        get_payment_gateway().refund(tx.stripe_payment_intent_id, amount)
    except ProviderFailure:
        db.session.rollback()
        raise

    tx.refunded_amount = pricing.to_money(tx.refunded_amount + amount)
    if full or tx.refunded_amount >= tx.amount:
        tx.status = "refunded"
        Booking.query.filter_by(id=booking.id).update(
            {"payment_status": "refunded"}, synchronize_session=False
        )
    current_app.logger.info("Refunded %s for booking %s", amount, booking.id)
    return amount


def _notify_parties(booking: Booking, customer_event, customer_payload, developer_event, developer_payload):
    notify(booking.customer_user_id, customer_event, customer_payload)
    notify(booking.developer_user_id, developer_event, developer_payload)


# ---------- create / read ----------

def create_booking(customer, developer_id, scheduled_at, duration_minutes) -> Booking:
    developer_id = parse_int(developer_id, "developer_id")
    duration = parse_int(duration_minutes, "duration_minutes", minimum=1)
    when = parse_datetime(scheduled_at)

    profile = db.session.get(DeveloperProfile, developer_id)
    if not profile:
        raise NotFound("Developer not found")
    if profile.user_id == customer.id:
        raise ValidationError("You cannot book yourself")

    rate = pricing.to_money(profile.hourly_rate)
    booking = Booking(
        customer_user_id=customer.id,
        developer_id=profile.id,
        developer_user_id=profile.user_id,
        scheduled_at=when,
        duration_minutes=duration,
        hourly_rate=rate,
        total_amount=pricing.total_amount(rate, duration),
        status="pending",
        payment_status="pending",
    )
    db.session.add(booking)
    db.session.commit()

    notify(profile.user_id, "notification:booking-request", {
        "bookingId": booking.id,
        "customerName": customer.full_name,
        "duration": duration,
        "rate": str(rate),
        "message": f"{customer.full_name} wants to book you for {duration} minutes",
    })
    return booking


def get_booking(caller_id: int, booking_id) -> Booking:
    booking = load_booking(booking_id)
    _require_party(booking, caller_id)
    return booking


def list_user_bookings(caller_id: int, user_id: int):
    if caller_id != user_id:
        raise Unauthorized("You can only list your own bookings")
    return (
        Booking.query
        .filter(or_(Booking.customer_user_id == user_id, Booking.developer_user_id == user_id))
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )


# ---------- transitions ----------

def confirm_booking(caller_id: int, booking_id):
    booking = load_booking(booking_id)
    if booking.customer_user_id != caller_id:
        raise Unauthorized("Only the customer can confirm this booking")
    if booking.status != "pending":
        raise InvalidTransition(f"Cannot confirm a booking that is {booking.status}")
    if booking.payment_status != "completed":
        raise InvalidTransition("Payment not completed")

    channel_name = generate_channel_name(booking.id)
    provisioner = get_video_provisioner()
    customer_token = provisioner.issue_token(channel_name, booking.customer_user_id, "publisher")
    developer_token = provisioner.issue_token(channel_name, booking.developer_user_id, "publisher")

    _swap_status(
        booking.id,
        "pending",
        {"status": "confirmed", "agora_channel_name": channel_name, "agora_token": customer_token},
        Booking.payment_status == "completed",
    )
    db.session.add(CallSession(
        booking_id=booking.id,
        agora_channel_id=channel_name,
        customer_uid=booking.customer_user_id,
        developer_uid=booking.developer_user_id,
    ))
    _commit()

    call_details = {
        "channelName": channel_name,
        "customerToken": customer_token,
        "developerToken": developer_token,
        "customerUid": booking.customer_user_id,
        "developerUid": booking.developer_user_id,
    }
    _notify_parties(
        booking,
        "notification:booking-confirmed",
        {"bookingId": booking.id, "channelName": channel_name,
         "message": "Your booking has been confirmed. Redirecting to video call..."},
        "notification:call-ready",
        {"bookingId": booking.id, "channelName": channel_name,
         "message": "You have a confirmed booking. Join the video call."},
    )
    return booking, call_details


def start_call(caller_id: int, booking_id) -> Booking:
    booking = load_booking(booking_id)
    _require_party(booking, caller_id)
    if booking.status != "confirmed":
        raise InvalidTransition(f"Cannot start a call for a booking that is {booking.status}")
    if booking.payment_status != "completed":
        raise InvalidTransition("Payment not completed")

    now = datetime.utcnow()
    _swap_status(
        booking.id, "confirmed", {"status": "in_progress", "started_at": now},
        Booking.payment_status == "completed",
    )
    CallSession.query.filter_by(booking_id=booking.id).update(
        {"call_started_at": now}, synchronize_session=False
    )
    DeveloperProfile.query.filter_by(id=booking.developer_id).update(
        {"availability_status": "in_call"}, synchronize_session=False
    )
    _commit()

    _notify_parties(
        booking,
        "call:participant-joined", {"bookingId": booking.id, "participantType": "developer"},
        "call:participant-joined", {"bookingId": booking.id, "participantType": "customer"},
    )
    return booking


def end_call(caller_id: int, booking_id, actual_duration_minutes, quality_stats=None) -> dict:
    actual = parse_int(actual_duration_minutes, "actual_duration_minutes", minimum=0)
    booking = load_booking(booking_id)
    _require_party(booking, caller_id)
    if booking.status != "in_progress":
        raise InvalidTransition(f"Cannot end a call for a booking that is {booking.status}")
    if booking.payment_status != "completed":
        raise InvalidTransition("Payment not completed")

    held = pricing.to_money(booking.total_amount - booking.refund_amount)
    refund = min(pricing.refund_amount(booking.hourly_rate, booking.duration_minutes, actual), held)
    # refunds issued before the call come out of earnings too
    earnings = pricing.developer_earnings(held, refund)
    now = datetime.utcnow()

    _swap_status(booking.id, "in_progress", {
        "status": "completed",
        "ended_at": now,
        "refund_amount": pricing.to_money(booking.refund_amount + refund),
    }, Booking.payment_status == "completed")
    CallSession.query.filter_by(booking_id=booking.id).update({
        "call_ended_at": now,
        "actual_duration_minutes": actual,
        "quality_stats": json.dumps(quality_stats) if quality_stats is not None else None,
    }, synchronize_session=False)
    DeveloperProfile.query.filter_by(id=booking.developer_id).update({
        DeveloperProfile.total_minutes_worked: DeveloperProfile.total_minutes_worked + actual,
        DeveloperProfile.total_earnings: DeveloperProfile.total_earnings + earnings,
        DeveloperProfile.availability_status: "online",
    }, synchronize_session=False)
    credit_wallet(booking.developer_user_id, earnings)

    refunded = pricing.to_money(0)
    if refund > 0:
        refunded = issue_gateway_refund(booking, refund)
    _commit()

    _notify_parties(
        booking,
        "notification:call-ended", {"bookingId": booking.id, "message": "Call ended. Please rate your experience."},
        "notification:call-ended", {"bookingId": booking.id, "message": "Call ended"},
    )
    return {
        "booking": booking,
        "refund_amount": refund,
        "refund_executed": refunded,
        "developer_earnings": earnings,
    }


def cancel_booking(caller_id: int, booking_id, reason=None) -> dict:
    booking = load_booking(booking_id)
    _require_party(booking, caller_id)
    if booking.status in ("completed", "cancelled"):
        raise InvalidTransition("Cannot cancel this booking")

    previous_status = booking.status
    paid = booking.payment_status == "completed"
    now = datetime.utcnow()

    values = {
        "status": "cancelled",
        "cancelled_at": now,
        "cancelled_by": caller_id,
        "cancel_reason": (reason or "").strip()[:255] or None,
    }
    tx = _transaction_for(booking.id) if paid else None
    if paid:
        values["payment_status"] = "refunded"
        if tx is not None:
            values["refund_amount"] = pricing.to_money(tx.amount)

    _swap_status(booking.id, previous_status, values, Booking.payment_status == booking.payment_status)

    if previous_status == "in_progress":
        CallSession.query.filter_by(booking_id=booking.id).update(
            {"call_ended_at": now}, synchronize_session=False
        )
        DeveloperProfile.query.filter_by(id=booking.developer_id).update(
            {"availability_status": "online"}, synchronize_session=False
        )

    refunded = pricing.to_money(0)
    if paid:
        refunded = issue_gateway_refund(booking, tx.amount if tx else 0, full=True)
    _commit()

    payload = {"bookingId": booking.id, "reason": values["cancel_reason"], "cancelledBy": caller_id}
    _notify_parties(
        booking,
        "notification:booking-cancelled", payload,
        "notification:booking-cancelled", payload,
    )
    return {"booking": booking, "refund_amount": refunded}
