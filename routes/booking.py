from flask import Blueprint, request, jsonify, g

from models.call_session import CallSession
from services import lifecycle
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import booking_to_dict, call_session_to_dict, money

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


# ---------- CUSTOMERS: create booking (price snapshot) ----------
@booking_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    booking = lifecycle.create_booking(
        g.user,
        data.get("developer_id"),
        data.get("scheduled_at"),
        data.get("duration_minutes"),
    )

    log_event(
        "BOOKING_CREATE", user_id=g.user.id, entity="booking", entity_id=booking.id,
        metadata={"developer_id": booking.developer_id, "total_amount": money(booking.total_amount)},
    )
    return jsonify(
        booking=booking_to_dict(booking),
        message="Booking created successfully. Please proceed to payment.",
    ), 201


# ---------- PARTIES: view bookings ----------
@booking_bp.get("/user/<int:user_id>")
@login_required
def user_bookings(user_id: int):
    rows = lifecycle.list_user_bookings(g.user.id, user_id)
    return jsonify([booking_to_dict(b) for b in rows]), 200


@booking_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = lifecycle.get_booking(g.user.id, booking_id)
    out = booking_to_dict(booking)
    call_session = CallSession.query.filter_by(booking_id=booking.id).first()
    out["call_session"] = call_session_to_dict(call_session) if call_session else None
    return jsonify(out), 200


# ---------- CUSTOMER: confirm after payment ----------
@booking_bp.put("/<int:booking_id>/confirm")
@login_required
def confirm_booking(booking_id: int):
    booking, call_details = lifecycle.confirm_booking(g.user.id, booking_id)

    log_event(
        "BOOKING_CONFIRM", user_id=g.user.id, entity="booking", entity_id=booking.id,
        metadata={"channel": call_details["channelName"]},
    )
    return jsonify(booking=booking_to_dict(booking), callDetails=call_details), 200


# ---------- PARTIES: call start/end ----------
@booking_bp.put("/<int:booking_id>/start-call")
@login_required
def start_call(booking_id: int):
    booking = lifecycle.start_call(g.user.id, booking_id)
    log_event("CALL_START", user_id=g.user.id, entity="booking", entity_id=booking.id)
    return jsonify(booking_to_dict(booking)), 200


@booking_bp.put("/<int:booking_id>/end-call")
@login_required
def end_call(booking_id: int):
    data = request.get_json(silent=True) or {}
    result = lifecycle.end_call(
        g.user.id,
        booking_id,
        data.get("actual_duration_minutes"),
        data.get("quality_stats"),
    )
    booking = result["booking"]

    log_event(
        "CALL_END", user_id=g.user.id, entity="booking", entity_id=booking.id,
        metadata={
            "refund_amount": money(result["refund_amount"]),
            "developer_earnings": money(result["developer_earnings"]),
        },
    )
    return jsonify(
        booking=booking_to_dict(booking),
        refundAmount=money(result["refund_amount"]),
        refundExecuted=money(result["refund_executed"]),
        developerEarnings=money(result["developer_earnings"]),
    ), 200


# ---------- PARTIES: cancel ----------
@booking_bp.put("/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    result = lifecycle.cancel_booking(g.user.id, booking_id, data.get("reason"))
    booking = result["booking"]

    log_event(
        "BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id,
        metadata={"reason": booking.cancel_reason, "refund_amount": money(result["refund_amount"])},
    )
    return jsonify(
        booking=booking_to_dict(booking),
        refundAmount=money(result["refund_amount"]),
        message="Booking cancelled successfully",
    ), 200
