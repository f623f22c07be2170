"""
Jovika Kito v2.0 — Paywall Gate

Runs only when HARD_PAYWALL is on and the student is not premium.
Decision order, first match wins. Every branch stops the turn:

    1. expired + renewal cooldown elapsed   → expiry notice
    2. never sent a sales notice            → initial paywall notice
    3. sales intent + sales cooldown elapsed → paywall notice again
    4. otherwise                            → silence (persist only)

Silence is deliberate: a non-premium student gets at most one notice per
cooldown, not one per message.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.config import SALES_NOTICE_COOLDOWN_HOURS, PREMIUM_EXPIRED_NOTICE_COOLDOWN_HOURS
from app.state.entitlement import is_expired, is_premium
from app.state.session import StudentRecord
from app.tutor import replies

logger = logging.getLogger(__name__)


@dataclass
class PaywallDecision:
    stop: bool
    reason: str                    # "premium" | "expired_notice" | "initial_notice" | "sales_notice" | "silent"
    notice: Optional[str] = None   # Text to send, None for silence


def _cooldown_elapsed(last: Optional[datetime], now: datetime, hours: float) -> bool:
    return last is None or now - last >= timedelta(hours=hours)


def apply_paywall(
    record: StudentRecord,
    sales_intent: bool,
    now: datetime,
    sales_cooldown_hours: float = SALES_NOTICE_COOLDOWN_HOURS,
    expired_cooldown_hours: float = PREMIUM_EXPIRED_NOTICE_COOLDOWN_HOURS,
) -> PaywallDecision:
    """
    Decide whether a notice is due and stamp the record when one is.
    Premium students pass straight through (stop=False).
    """
    if is_premium(record, now):
        return PaywallDecision(stop=False, reason="premium")

    if is_expired(record, now) and _cooldown_elapsed(
        record.last_premium_expired_notice_at, now, expired_cooldown_hours
    ):
        record.last_premium_expired_notice_at = now
        logger.info(f"Paywall: expiry notice for {record.phone}")
        return PaywallDecision(stop=True, reason="expired_notice", notice=replies.expired_notice(record.name))

    if record.last_sales_message_at is None:
        record.last_sales_message_at = now
        logger.info(f"Paywall: initial notice for {record.phone}")
        return PaywallDecision(stop=True, reason="initial_notice", notice=replies.paywall_notice(record.name))

    if sales_intent and _cooldown_elapsed(record.last_sales_message_at, now, sales_cooldown_hours):
        record.last_sales_message_at = now
        logger.info(f"Paywall: sales notice resent for {record.phone}")
        return PaywallDecision(stop=True, reason="sales_notice", notice=replies.paywall_notice(record.name))

    logger.info(f"Paywall: silent for {record.phone}")
    return PaywallDecision(stop=True, reason="silent")
