from datetime import datetime
from decimal import Decimal

from models.db import db


class WalletBalance(db.Model):
    __tablename__ = "wallet_balances"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)

    # developer earnings land here when a call completes
    balance = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    currency = db.Column(db.String(10), nullable=False, default="USDC")

    last_updated = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
