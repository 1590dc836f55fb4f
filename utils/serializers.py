import json

from services.pricing import to_money


def money(value):
    # money goes out as a string
    return str(to_money(value)) if value is not None else None


def iso(value):
    return value.isoformat() if value else None


def user_to_dict(user):
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "user_type": user.user_type,
        "bio": user.bio,
        "profile_picture_url": user.profile_picture_url,
        "github_url": user.github_url,
        "portfolio_url": user.portfolio_url,
    }


def booking_to_dict(b):
    return {
        "id": b.id,
        "customer_user_id": b.customer_user_id,
        "developer_id": b.developer_id,
        "developer_user_id": b.developer_user_id,
        "scheduled_at": iso(b.scheduled_at),
        "duration_minutes": b.duration_minutes,
        "hourly_rate": money(b.hourly_rate),
        "total_amount": money(b.total_amount),
        "status": b.status,
        "payment_status": b.payment_status,
        "payment_transaction_id": b.payment_transaction_id,
        "agora_channel_name": b.agora_channel_name,
        "agora_token": b.agora_token,
        "started_at": iso(b.started_at),
        "ended_at": iso(b.ended_at),
        "refund_amount": money(b.refund_amount),
        "cancelled_at": iso(b.cancelled_at),
        "cancelled_by": b.cancelled_by,
        "cancel_reason": b.cancel_reason,
        "created_at": iso(b.created_at),
    }


def call_session_to_dict(cs):
    return {
        "id": cs.id,
        "booking_id": cs.booking_id,
        "agora_channel_id": cs.agora_channel_id,
        "customer_uid": cs.customer_uid,
        "developer_uid": cs.developer_uid,
        "call_started_at": iso(cs.call_started_at),
        "call_ended_at": iso(cs.call_ended_at),
        "actual_duration_minutes": cs.actual_duration_minutes,
        "quality_stats": json.loads(cs.quality_stats) if cs.quality_stats else None,
    }


def transaction_to_dict(tx):
    return {
        "id": tx.id,
        "booking_id": tx.booking_id,
        "user_id": tx.user_id,
        "amount": money(tx.amount),
        "currency": tx.currency,
        "crypto_amount": str(tx.crypto_amount) if tx.crypto_amount is not None else None,
        "crypto_currency": tx.crypto_currency,
        "stripe_payment_intent_id": tx.stripe_payment_intent_id,
        "status": tx.status,
        "refunded_amount": money(tx.refunded_amount),
        "created_at": iso(tx.created_at),
    }


def profile_to_dict(p, user=None):
    user = user or p.user
    out = {
        "id": p.id,
        "user_id": p.user_id,
        "hourly_rate": money(p.hourly_rate),
        "skills": [s.strip() for s in (p.skills or "").split(",") if s.strip()],
        "experience_years": p.experience_years,
        "availability_status": p.availability_status,
        "rating": money(p.rating),
        "total_reviews": p.total_reviews,
        "total_minutes_worked": p.total_minutes_worked,
        "total_hours_worked": money(p.total_hours_worked),
        "total_earnings": money(p.total_earnings),
    }
    if user is not None:
        out.update({
            "full_name": user.full_name,
            "bio": user.bio,
            "profile_picture_url": user.profile_picture_url,
            "github_url": user.github_url,
            "portfolio_url": user.portfolio_url,
        })
    return out


def review_to_dict(r, **extra):
    out = {
        "id": r.id,
        "booking_id": r.booking_id,
        "reviewer_user_id": r.reviewer_user_id,
        "developer_id": r.developer_id,
        "rating": r.rating,
        "review_text": r.review_text,
        "created_at": iso(r.created_at),
    }
    out.update(extra)
    return out


def wallet_to_dict(w):
    return {
        "user_id": w.user_id,
        "balance": money(w.balance),
        "currency": w.currency,
        "last_updated": iso(w.last_updated),
    }
