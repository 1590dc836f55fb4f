from datetime import datetime
from decimal import Decimal

from models.db import db
from services.pricing import hours_from_minutes

AVAILABILITY_STATUSES = ("online", "offline", "in_call")


class DeveloperProfile(db.Model):
    __tablename__ = "developer_profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)

    # current asking rate; bookings keep their own snapshot
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=False)
    skills = db.Column(db.Text, nullable=True)  # comma separated
    experience_years = db.Column(db.Integer, nullable=True)

    availability_status = db.Column(db.String(20), nullable=False, default="offline")

    # whole minutes; hours are derived from the total
    total_minutes_worked = db.Column(db.Integer, nullable=False, default=0)
    total_earnings = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))

    # derived from reviews
    rating = db.Column(db.Numeric(3, 2), nullable=False, default=Decimal("0"))
    total_reviews = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="developer_profile")

    @property
    def total_hours_worked(self) -> Decimal:
        return hours_from_minutes(self.total_minutes_worked or 0)
