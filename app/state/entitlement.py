"""
Jovika Kito v2.0 — Entitlement Evaluator
Pure functions over a StudentRecord and the current time. Never raise.

Rules:
- premium_until set → premium while now < premium_until (strict), whatever plan says.
- plan == premium with no premium_until → non-expiring premium.
- expired → premium_until set and premium_until <= now, whatever plan says.
"""

from datetime import datetime

from app.state.session import Plan, StudentRecord, ensure_utc


def is_premium(record: StudentRecord, now: datetime) -> bool:
    premium_until = ensure_utc(record.premium_until)
    if premium_until is not None:
        return now < premium_until
    return record.plan == Plan.PREMIUM


def is_expired(record: StudentRecord, now: datetime) -> bool:
    premium_until = ensure_utc(record.premium_until)
    return premium_until is not None and premium_until <= now


def entitlement_status(record: StudentRecord, now: datetime) -> str:
    """Returns "premium", "expired" or "free" for the admin surface."""
    if is_premium(record, now):
        return "premium"
    if is_expired(record, now):
        return "expired"
    return "free"
