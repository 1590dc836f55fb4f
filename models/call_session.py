from datetime import datetime
from models.db import db

class CallSession(db.Model):
    __tablename__ = "call_sessions"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True, index=True)

    agora_channel_id = db.Column(db.String(255), nullable=False)
    customer_uid = db.Column(db.Integer, nullable=False)
    developer_uid = db.Column(db.Integer, nullable=False)

    call_started_at = db.Column(db.DateTime, nullable=True)
    call_ended_at = db.Column(db.DateTime, nullable=True)
    actual_duration_minutes = db.Column(db.Integer, nullable=True)
    quality_stats = db.Column(db.Text, nullable=True)  # JSON blob from the client SDK

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
