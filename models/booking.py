from datetime import datetime
from decimal import Decimal

from models.db import db

BOOKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")
OPEN_STATUSES = ("pending", "confirmed", "in_progress")
PAYMENT_STATUSES = ("pending", "completed", "refunded")


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    customer_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    developer_id = db.Column(db.Integer, db.ForeignKey("developer_profiles.id"), nullable=False, index=True)
    developer_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    scheduled_at = db.Column(db.DateTime, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)

    # price snapshot taken at creation, never recomputed
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=False)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(20), nullable=False, default="pending")
    payment_transaction_id = db.Column(db.String(255), nullable=True)  # external intent id

    agora_channel_name = db.Column(db.String(255), nullable=True)
    agora_token = db.Column(db.Text, nullable=True)

    started_at = db.Column(db.DateTime, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)
    refund_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))

    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("duration_minutes > 0", name="ck_booking_duration_positive"),
    )

    def is_party(self, user_id) -> bool:
        return user_id in (self.customer_user_id, self.developer_user_id)
