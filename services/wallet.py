from datetime import datetime

from flask import current_app

from models import db
from models.wallet import WalletBalance
from services import pricing
from services.errors import NotFound


def ensure_wallet(user_id: int) -> WalletBalance:
    """Wallet row for the user, added to the session if missing. The caller commits."""
    wallet = WalletBalance.query.filter_by(user_id=user_id).first()
    if wallet is None:
        wallet = WalletBalance(
            user_id=user_id,
            balance=pricing.to_money(0),
            currency=current_app.config.get("WALLET_CURRENCY", "USDC"),
        )
        db.session.add(wallet)
        db.session.flush()
    return wallet


def credit_wallet(user_id: int, amount) -> None:
    """Add `amount` to the user's balance inside the caller's transaction."""
    amount = pricing.to_money(amount)
    if amount <= 0:
        return

    changed = WalletBalance.query.filter_by(user_id=user_id).update({
        WalletBalance.balance: WalletBalance.balance + amount,
        WalletBalance.last_updated: datetime.utcnow(),
    }, synchronize_session=False)
    if not changed:
        ensure_wallet(user_id).balance = amount


def get_wallet(user_id: int) -> WalletBalance:
    wallet = WalletBalance.query.filter_by(user_id=user_id).first()
    if not wallet:
        raise NotFound("Wallet not found")
    return wallet
