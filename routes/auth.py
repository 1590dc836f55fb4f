from decimal import Decimal

from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.developer_profile import DeveloperProfile
from models.user import User, USER_TYPES
from models.wallet import WalletBalance
from security.password import hash_password, verify_password, password_problems
from security.session import bearer_token_from_request, create_session, revoke_session
from services.wallet import ensure_wallet
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import user_to_dict, wallet_to_dict


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _auth_response(user: User, token: str):
    out = user_to_dict(user)
    out["developer_id"] = user.developer_profile.id if user.developer_profile else None
    return {"token": token, "user": out}


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    full_name = (data.get("full_name") or "").strip()
    user_type = (data.get("user_type") or "").strip().lower()

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    if not full_name:
        return jsonify(error="full_name is required"), 400
    if user_type not in USER_TYPES:
        return jsonify(error="user_type must be developer or customer"), 400
    problems = password_problems(password, current_app.config.get("PASSWORD_MIN_LENGTH", 6))
    if problems:
        return jsonify(error="Password does not meet policy", details=problems), 400

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return jsonify(error="User already exists"), 409

    pw_hash = hash_password(password, current_app.config.get("BCRYPT_ROUNDS", 12))

    user = User(email=email, password_hash=pw_hash, full_name=full_name, user_type=user_type)
    db.session.add(user)
    db.session.flush()

    if user_type == "developer":
        db.session.add(DeveloperProfile(
            user_id=user.id,
            hourly_rate=Decimal(str(current_app.config.get("DEFAULT_HOURLY_RATE", "50"))),
        ))
    ensure_wallet(user.id)

    db.session.commit()
    log_event("REGISTER_SUCCESS", user_id=user.id, metadata={"user_type": user_type})

    token = create_session(user.id)
    return jsonify(_auth_response(user, token)), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not _is_valid_email(email) or not password:
        return jsonify(error="email and password are required"), 400

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return jsonify(error="Invalid credentials"), 401

    token = create_session(user.id)
    log_event("LOGIN_SUCCESS", user_id=user.id)
    return jsonify(_auth_response(user, token)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    revoke_session(bearer_token_from_request())
    log_event("LOGOUT", user_id=g.user.id)
    return jsonify(message="Logged out"), 200


@auth_bp.get("/me")
@login_required
def me():
    out = user_to_dict(g.user)
    out["developer_id"] = g.user.developer_profile.id if g.user.developer_profile else None
    wallet = WalletBalance.query.filter_by(user_id=g.user.id).first()
    out["wallet"] = wallet_to_dict(wallet) if wallet else None
    return jsonify(out), 200
