from flask import Blueprint, jsonify

from .auth import auth_bp
from .booking import booking_bp
from .developers import developers_bp
from .payments import payments_bp
from .reviews import reviews_bp
from .stripe_webhook import webhook_bp

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="Server is running"), 200
