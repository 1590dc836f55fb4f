from flask import Blueprint, request, jsonify, g

from services import reviews
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import review_to_dict

reviews_bp = Blueprint("reviews", __name__, url_prefix="/reviews")


@reviews_bp.post("")
@login_required
def create_review():
    data = request.get_json(silent=True) or {}
    review = reviews.create_review(g.user.id, data.get("booking_id"), data.get("rating"), data.get("review_text"))

    log_event(
        "REVIEW_CREATE", user_id=g.user.id, entity="review", entity_id=review.id,
        metadata={"booking_id": review.booking_id, "rating": review.rating},
    )
    return jsonify(review_to_dict(review)), 201


@reviews_bp.get("/developer/<int:developer_id>")
def developer_reviews(developer_id: int):
    rows = reviews.list_developer_reviews(developer_id)
    return jsonify([
        review_to_dict(r, reviewer_name=name, profile_picture_url=picture)
        for r, name, picture in rows
    ]), 200


@reviews_bp.get("/user/<int:user_id>")
@login_required
def user_reviews(user_id: int):
    rows = reviews.list_user_reviews(g.user.id, user_id)
    return jsonify([review_to_dict(r, developer_name=name) for r, name in rows]), 200


@reviews_bp.put("/<int:review_id>")
@login_required
def update_review(review_id: int):
    data = request.get_json(silent=True) or {}
    review = reviews.update_review(g.user.id, review_id, data.get("rating"), data.get("review_text"))

    log_event("REVIEW_UPDATE", user_id=g.user.id, entity="review", entity_id=review.id)
    return jsonify(review_to_dict(review)), 200


@reviews_bp.delete("/<int:review_id>")
@login_required
def delete_review(review_id: int):
    reviews.delete_review(g.user.id, review_id)

    log_event("REVIEW_DELETE", user_id=g.user.id, entity="review", entity_id=review_id)
    return jsonify(message="Review deleted successfully"), 200
