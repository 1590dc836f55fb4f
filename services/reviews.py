from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from models import db
from models.developer_profile import DeveloperProfile
from models.review import Review
from models.user import User
from services import pricing
from services.errors import InvalidTransition, NotFound, Unauthorized, ValidationError
from services.lifecycle import load_booking, parse_int


def _parse_rating(value) -> int:
    rating = parse_int(value, "rating")
    if rating < 1 or rating > 5:
        raise ValidationError("rating must be between 1 and 5")
    return rating


def _parse_text(value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("review_text must be a string")
    return value.strip() or None


def recompute_developer_rating(developer_id: int):
    """Mean of every rating the developer has, rounded to 2 places; 0 when there are none."""
    avg_rating, total = (
        db.session.query(func.avg(Review.rating), func.count(Review.id))
        .filter(Review.developer_id == developer_id)
        .one()
    )
    rating = pricing.to_money(avg_rating) if total else Decimal("0.00")
    DeveloperProfile.query.filter_by(id=developer_id).update(
        {"rating": rating, "total_reviews": total}, synchronize_session=False
    )
    return rating, total


def _load_review(review_id) -> Review:
    review = db.session.get(Review, review_id)
    if not review:
        raise NotFound("Review not found")
    return review


def create_review(caller_id: int, booking_id, rating, review_text=None) -> Review:
    booking = load_booking(parse_int(booking_id, "booking_id"))
    if booking.customer_user_id != caller_id:
        raise Unauthorized("Only the customer can review this booking")
    if booking.status != "completed":
        raise InvalidTransition("Can only review completed bookings")
    if Review.query.filter_by(booking_id=booking.id).first():
        raise InvalidTransition("Review already exists for this booking")

    rating = _parse_rating(rating)
    text = _parse_text(review_text)

    review = Review(
        booking_id=booking.id,
        reviewer_user_id=caller_id,
        developer_id=booking.developer_id,
        rating=rating,
        review_text=text,
    )
    db.session.add(review)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise InvalidTransition("Review already exists for this booking")

    recompute_developer_rating(booking.developer_id)
    db.session.commit()
    return review


def update_review(caller_id: int, review_id, rating=None, review_text=None) -> Review:
    review = _load_review(review_id)
    if review.reviewer_user_id != caller_id:
        raise Unauthorized("You can only edit your own reviews")

    if rating is not None:
        review.rating = _parse_rating(rating)
    if review_text is not None:
        review.review_text = _parse_text(review_text)

    db.session.flush()
    recompute_developer_rating(review.developer_id)
    db.session.commit()
    return review


def delete_review(caller_id: int, review_id) -> None:
    review = _load_review(review_id)
    if review.reviewer_user_id != caller_id:
        raise Unauthorized("You can only delete your own reviews")

    developer_id = review.developer_id
    db.session.delete(review)
    db.session.flush()
    recompute_developer_rating(developer_id)
    db.session.commit()


def list_developer_reviews(developer_id: int, limit=None):
    q = (
        db.session.query(Review, User.full_name, User.profile_picture_url)
        .join(User, Review.reviewer_user_id == User.id)
        .filter(Review.developer_id == developer_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    if limit:
        q = q.limit(limit)
    return q.all()


def list_user_reviews(caller_id: int, user_id: int):
    if caller_id != user_id:
        raise Unauthorized("You can only list your own reviews")
    return (
        db.session.query(Review, User.full_name)
        .join(DeveloperProfile, Review.developer_id == DeveloperProfile.id)
        .join(User, DeveloperProfile.user_id == User.id)
        .filter(Review.reviewer_user_id == user_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .all()
    )
