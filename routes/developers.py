from datetime import datetime
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, jsonify, g

from models import db
from models.availability_slot import AvailabilitySlot
from models.developer_profile import DeveloperProfile, AVAILABILITY_STATUSES
from models.user import User
from security.rbac import require_user_type
from services.errors import ValidationError
from services.lifecycle import parse_datetime
from services.pricing import to_money
from services.reviews import list_developer_reviews
from utils.audit import log_event
from utils.serializers import iso, profile_to_dict, review_to_dict

developers_bp = Blueprint("developers", __name__, url_prefix="/developers")


def _own_profile_or_error(developer_id: int):
    profile = db.session.get(DeveloperProfile, developer_id)
    if not profile:
        return None, (jsonify(error="Developer profile not found"), 404)
    if profile.user_id != g.user.id:
        return None, (jsonify(error="Unauthorized"), 403)
    return profile, None


def _slot_to_dict(slot):
    return {
        "id": slot.id,
        "developer_id": slot.developer_id,
        "start_time": iso(slot.start_time),
        "end_time": iso(slot.end_time),
    }


@developers_bp.get("/available")
def available_developers():
    rows = (
        db.session.query(DeveloperProfile, User)
        .join(User, DeveloperProfile.user_id == User.id)
        .filter(DeveloperProfile.availability_status == "online")
        .order_by(DeveloperProfile.rating.desc(), DeveloperProfile.total_minutes_worked.desc())
        .all()
    )
    return jsonify([profile_to_dict(p, u) for p, u in rows]), 200


@developers_bp.get("/<int:developer_id>")
def get_developer(developer_id: int):
    profile = db.session.get(DeveloperProfile, developer_id)
    if not profile:
        return jsonify(error="Developer not found"), 404

    out = profile_to_dict(profile)
    out["reviews"] = [
        review_to_dict(r, reviewer_name=name)
        for r, name, _picture in list_developer_reviews(profile.id, limit=10)
    ]
    return jsonify(out), 200


@developers_bp.put("/<int:developer_id>")
@require_user_type("developer")
def update_developer(developer_id: int):
    profile, failure = _own_profile_or_error(developer_id)
    if failure:
        return failure

    data = request.get_json(silent=True) or {}

    if data.get("hourly_rate") is not None:
        try:
            rate = to_money(Decimal(str(data["hourly_rate"])))
        except (InvalidOperation, ValueError):
            return jsonify(error="hourly_rate must be a number"), 400
        if rate <= 0:
            return jsonify(error="hourly_rate must be positive"), 400
        # existing bookings keep their own snapshot
        profile.hourly_rate = rate

    if data.get("skills") is not None:
        skills = data["skills"]
        if isinstance(skills, (list, tuple)):
            skills = ",".join(str(s).strip() for s in skills if str(s).strip())
        profile.skills = str(skills)

    if data.get("experience_years") is not None:
        try:
            profile.experience_years = max(0, int(data["experience_years"]))
        except (TypeError, ValueError):
            return jsonify(error="experience_years must be an integer"), 400

    user = g.user
    for field in ("bio", "github_url", "portfolio_url", "profile_picture_url"):
        if data.get(field) is not None:
            setattr(user, field, (str(data[field]).strip() or None))

    db.session.commit()
    log_event("DEVELOPER_PROFILE_UPDATE", user_id=g.user.id, entity="developer", entity_id=profile.id)
    return jsonify(profile_to_dict(profile)), 200


@developers_bp.put("/<int:developer_id>/availability-status")
@require_user_type("developer")
def set_availability_status(developer_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in AVAILABILITY_STATUSES:
        return jsonify(error="Invalid status"), 400

    profile, failure = _own_profile_or_error(developer_id)
    if failure:
        return failure

    # last writer wins against call start/end
    profile.availability_status = status
    db.session.commit()

    log_event("DEVELOPER_STATUS", user_id=g.user.id, entity="developer", entity_id=profile.id, metadata={"status": status})
    return jsonify(profile_to_dict(profile)), 200


@developers_bp.get("/<int:developer_id>/availability-slots")
def list_availability_slots(developer_id: int):
    slots = (
        AvailabilitySlot.query
        .filter(AvailabilitySlot.developer_id == developer_id, AvailabilitySlot.end_time > datetime.utcnow())
        .order_by(AvailabilitySlot.start_time.asc())
        .all()
    )
    return jsonify([_slot_to_dict(s) for s in slots]), 200


@developers_bp.post("/<int:developer_id>/availability-slots")
@require_user_type("developer")
def add_availability_slot(developer_id: int):
    profile, failure = _own_profile_or_error(developer_id)
    if failure:
        return failure

    data = request.get_json(silent=True) or {}
    if not data.get("start_time") or not data.get("end_time"):
        raise ValidationError("start_time and end_time are required")
    start = parse_datetime(data.get("start_time"))
    end = parse_datetime(data.get("end_time"))
    if end <= start:
        return jsonify(error="end_time must be after start_time"), 400

    if AvailabilitySlot.query.filter_by(developer_id=profile.id, start_time=start, end_time=end).first():
        return jsonify(error="Slot already exists for that time"), 409

    slot = AvailabilitySlot(developer_id=profile.id, start_time=start, end_time=end)
    db.session.add(slot)
    db.session.commit()

    log_event("AVAILABILITY_SLOT_CREATE", user_id=g.user.id, entity="availability_slot", entity_id=slot.id)
    return jsonify(_slot_to_dict(slot)), 201
