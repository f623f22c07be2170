"""
Jovika Kito v2.0 — Dedupe Guard
The gateway re-delivers webhooks. A message id seen before is dropped.

The recorded set is bounded: once it grows past max_ids it is cleared wholesale.
Re-deliveries arrive within seconds, so losing old ids is acceptable.
"""

import logging
import threading
from typing import Optional

from app.config import DEDUPE_MAX_IDS

logger = logging.getLogger(__name__)


class DedupeGuard:
    def __init__(self, max_ids: int = DEDUPE_MAX_IDS):
        self.max_ids = max_ids
        self._seen: set[str] = set()
        self._last_moment_by_phone: dict[str, str] = {}
        self._lock = threading.Lock()

    def should_process(self, message_id: Optional[str]) -> bool:
        """False if message_id was already recorded. Empty ids always pass."""
        if not message_id:
            return True
        with self._lock:
            if message_id in self._seen:
                logger.info(f"Duplicate message ignored (messageId): {message_id}")
                return False
            self._seen.add(message_id)
            if len(self._seen) > self.max_ids:
                logger.info(f"Dedupe set passed {self.max_ids} ids, clearing")
                self._seen.clear()
            return True

    def should_process_moment(self, phone: str, moment: Optional[str]) -> bool:
        """Second line of defence: same gateway timestamp twice for one phone."""
        if not moment or not phone:
            return True
        moment = str(moment)
        with self._lock:
            if self._last_moment_by_phone.get(phone) == moment:
                logger.info(f"Duplicate message ignored (momment): {phone} {moment}")
                return False
            self._last_moment_by_phone[phone] = moment
            if len(self._last_moment_by_phone) > self.max_ids:
                self._last_moment_by_phone.clear()
            return True

    def __len__(self) -> int:
        return len(self._seen)


# ─── Singleton ───────────────────────────────────────────────────────────────

_instance: Optional[DedupeGuard] = None


def get_dedupe_guard() -> DedupeGuard:
    global _instance
    if _instance is None:
        _instance = DedupeGuard()
    return _instance
