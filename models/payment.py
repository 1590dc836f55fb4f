from datetime import datetime
from decimal import Decimal

from models.db import db

TRANSACTION_STATUSES = ("pending", "completed", "refunded", "failed")


class PaymentTransaction(db.Model):
    __tablename__ = "payment_transactions"

    id = db.Column(db.Integer, primary_key=True)
    # one transaction per booking
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="usd")
    crypto_amount = db.Column(db.Numeric(20, 8), nullable=True)
    crypto_currency = db.Column(db.String(10), nullable=True)

    stripe_payment_intent_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending")
    refunded_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
