from datetime import datetime
from models.db import db

class AvailabilitySlot(db.Model):
    __tablename__ = "availability_slots"

    id = db.Column(db.Integer, primary_key=True)

    developer_id = db.Column(db.Integer, db.ForeignKey("developer_profiles.id"), nullable=False, index=True)
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("developer_id", "start_time", "end_time", name="uq_developer_timeslot"),
    )
