"""
Jovika Kito v2.0 — Session Store & Reconciler

Two sources of truth for a student:
    1. The in-process cache (fast, authoritative for the rest of the process lifetime)
    2. The durable record (survives restarts, receives out-of-band entitlement changes)

Anti-downgrade rules. A paid entitlement is never lost to a stale copy:
    - reconcile(): durable active premium always wins on entitlement fields
    - persist():   re-reads durable before writing; active durable premium wins again
                   (writes can race with payment events)

Persistence is best effort. A failed write is logged and counted; the cached copy
stays authoritative. Availability over durability.

Per-phone asyncio locks serialize whole turns for the same student.
"""

import asyncio
import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from fastapi.concurrency import run_in_threadpool

from app.database import SessionLocal
from app.models import Student
from app.state.entitlement import is_premium
from app.state.session import (
    ENTITLEMENT_FIELDS, Learning, Plan, StudentRecord, stage_state_for,
)

logger = logging.getLogger(__name__)


# ─── Durable Store Interface ─────────────────────────────────────────────────

class RecordStore(Protocol):
    """Upserts always merge: fields not passed are left untouched."""

    def get(self, key: str) -> Optional[dict]: ...

    def upsert(self, key: str, fields: dict) -> None: ...

    def list_all(self) -> list[tuple[str, dict]]: ...


_COLUMNS = (
    "name", "target_language", "level", "stage", "chat_mode",
    "lesson_index", "part_index", "awaiting_expected_text", "awaiting_set_at",
    "plan", "premium_until", "payment_provider",
    "last_sales_message_at", "last_premium_expired_notice_at",
    "messages_count", "history", "created_at", "last_message_at",
)


def _row_to_fields(row: Student) -> dict:
    return {col: getattr(row, col) for col in _COLUMNS}


class SqlRecordStore:
    """SQLAlchemy-backed durable store. One row per phone in `students`."""

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[dict]:
        with self._session_factory() as db:
            row = db.get(Student, key)
            return _row_to_fields(row) if row else None

    def upsert(self, key: str, fields: dict) -> None:
        with self._session_factory() as db:
            row = db.get(Student, key)
            if row is None:
                row = Student(phone=key)
                db.add(row)
            else:
                # created_at is written once, at insert
                fields = {k: v for k, v in fields.items() if k != "created_at"}
            for col, value in fields.items():
                if col in _COLUMNS:
                    setattr(row, col, value)
            db.commit()

    def list_all(self) -> list[tuple[str, dict]]:
        with self._session_factory() as db:
            return [(row.phone, _row_to_fields(row)) for row in db.query(Student).all()]


class InMemoryRecordStore:
    """Dict-backed durable store. Used in tests and when no database is configured."""

    def __init__(self):
        self._rows: dict[str, dict] = {}

    def get(self, key: str) -> Optional[dict]:
        row = self._rows.get(key)
        return copy.deepcopy(row) if row is not None else None

    def upsert(self, key: str, fields: dict) -> None:
        row = self._rows.get(key)
        if row is None:
            self._rows[key] = copy.deepcopy(fields)
            return
        for col, value in fields.items():
            if col == "created_at" and row.get("created_at"):
                continue
            row[col] = copy.deepcopy(value)

    def list_all(self) -> list[tuple[str, dict]]:
        return [(key, copy.deepcopy(row)) for key, row in self._rows.items()]


# ─── Reconciliation ──────────────────────────────────────────────────────────

def _copy_entitlement(target: StudentRecord, source: StudentRecord) -> None:
    for name in ENTITLEMENT_FIELDS:
        setattr(target, name, getattr(source, name))


def reconcile(cached: StudentRecord, durable: StudentRecord, now: datetime) -> StudentRecord:
    """
    Merge the cached and durable copies of one student.

    Entitlement fields:
        durable active premium        → durable wins (payment seen after cache was built)
        cached not currently premium  → durable wins (propagates manual lock / expiry)
        otherwise                     → cached active premium is kept
    Everything else: cached value if present, else durable.
    """
    merged = cached.copy()

    if is_premium(durable, now):
        _copy_entitlement(merged, durable)
    elif not is_premium(cached, now):
        _copy_entitlement(merged, durable)

    for name in ("name", "target_language", "chat_mode",
                 "last_sales_message_at", "last_premium_expired_notice_at"):
        if getattr(merged, name) is None:
            setattr(merged, name, getattr(durable, name))

    if not merged.history and durable.history:
        merged.history = list(durable.history)
    merged.messages_count = max(cached.messages_count, durable.messages_count)
    merged.created_at = min(cached.created_at, durable.created_at)

    # awaiting lives inside Learning; only borrow it when both copies are Learning
    if (
        isinstance(merged.stage_state, Learning)
        and merged.awaiting_repeat is None
        and durable.awaiting_repeat is not None
    ):
        merged.stage_state = stage_state_for(merged.stage, durable.awaiting_repeat)

    return merged


# ─── Session Store ───────────────────────────────────────────────────────────

class SessionStore:
    """
    Cache + durable record + one asyncio.Lock per phone.

    Cached records and per-phone locks are kept for the process lifetime and
    never evicted: memory grows with the number of distinct students seen.
    """

    def __init__(self, durable: RecordStore):
        self.durable = durable
        self._cache: dict[str, StudentRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_lock: Optional[asyncio.Lock] = None  # Initialized lazily
        self.persist_failures = 0
        self.read_failures = 0

    # ─── Locking ─────────────────────────────────────────────────────────────

    def _get_locks_lock(self) -> asyncio.Lock:
        if self._locks_lock is None:
            self._locks_lock = asyncio.Lock()
        return self._locks_lock

    async def lock_for(self, phone: str) -> asyncio.Lock:
        """
        Get or create the lock for one phone.
        Only one turn per phone may touch its record at a time.
        """
        async with self._get_locks_lock():
            if phone not in self._locks:
                self._locks[phone] = asyncio.Lock()
            return self._locks[phone]

    # ─── Reads ───────────────────────────────────────────────────────────────

    def cached(self, phone: str) -> Optional[StudentRecord]:
        return self._cache.get(phone)

    async def _fetch_durable(self, phone: str) -> Optional[StudentRecord]:
        """Durable read that propagates failures. None means the row is absent."""
        data = await run_in_threadpool(self.durable.get, phone)
        if data is None:
            return None
        return StudentRecord.from_fields(phone, data)

    async def read_durable(self, phone: str) -> Optional[StudentRecord]:
        """Durable read. Failures degrade to "no durable record"."""
        try:
            return await self._fetch_durable(phone)
        except Exception as e:
            self.read_failures += 1
            logger.error(f"Durable read failed for {phone}, using cache only: {e}")
            return None

    async def load(self, phone: str) -> Optional[StudentRecord]:
        """Cache first, then durable (populating the cache). None if neither exists."""
        record = self._cache.get(phone)
        if record is not None:
            return record
        record = await self.read_durable(phone)
        if record is not None:
            self._cache[phone] = record
        return record

    async def load_for_turn(self, phone: str, now: datetime) -> Optional[StudentRecord]:
        """
        Load for an inbound message: both sources are read and reconciled,
        so entitlement changes made out-of-band are seen on the next turn.
        """
        cached = self._cache.get(phone)
        durable = await self.read_durable(phone)
        if cached is not None and durable is not None:
            record = reconcile(cached, durable, now)
        else:
            record = cached or durable
        if record is not None:
            self._cache[phone] = record
        return record

    # ─── Writes ──────────────────────────────────────────────────────────────

    async def persist(self, phone: str, record: StudentRecord, now: Optional[datetime] = None) -> None:
        """
        Write the full field set. Before writing, durable active premium is forced
        onto a record that is not premium itself.
        """
        now = now or datetime.now(timezone.utc)
        durable = await self.read_durable(phone)
        if durable is not None and is_premium(durable, now):
            if record.plan != Plan.PREMIUM or not is_premium(record, now):
                logger.warning(f"Anti-downgrade: keeping durable premium for {phone}")
                _copy_entitlement(record, durable)

        self._cache[phone] = record
        await self._upsert(phone, record.to_fields())

    async def _upsert(self, phone: str, fields: dict) -> None:
        try:
            await run_in_threadpool(self.durable.upsert, phone, fields)
        except Exception as e:
            self.persist_failures += 1
            logger.error(
                f"Persist failed for {phone} (total failures: {self.persist_failures}), "
                f"keeping in-memory copy: {e}"
            )

    # ─── Entitlement operations ──────────────────────────────────────────────

    async def grant_premium(
        self,
        phone: str,
        days: int,
        provider: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> StudentRecord:
        """
        Grant (or extend) premium for `days`. Active premium is extended from its
        current end date; otherwise the period starts now.

        The full row is written only when the durable read confirms the phone is
        new. If that read fails, only the entitlement fields are upserted so an
        existing row keeps its stage and lesson state.
        """
        now = now or datetime.now(timezone.utc)
        async with await self.lock_for(phone):
            cached = self._cache.get(phone)
            try:
                durable = await self._fetch_durable(phone)
                row_absent = durable is None
            except Exception as e:
                self.read_failures += 1
                logger.error(f"Durable read failed for {phone} during grant, writing entitlement only: {e}")
                durable, row_absent = None, False

            if cached is not None and durable is not None:
                record = reconcile(cached, durable, now)
            else:
                record = cached or durable
            if record is None:
                record = StudentRecord(phone=phone, created_at=now, last_message_at=now)
                # A placeholder built while the row is unreadable must not shadow it later
                if row_absent:
                    self._cache[phone] = record
            else:
                self._cache[phone] = record

            start = now
            if is_premium(record, now) and record.premium_until is not None:
                start = record.premium_until
            record.plan = Plan.PREMIUM
            record.premium_until = start + timedelta(days=days)
            record.payment_provider = provider or record.payment_provider

            if row_absent:
                fields = record.to_fields()
            else:
                fields = {name: getattr(record, name) for name in ENTITLEMENT_FIELDS}
                fields["plan"] = record.plan.value
            await self._upsert(phone, fields)
            logger.info(f"Premium granted to {phone} until {record.premium_until.isoformat()}")
            return record

    async def revoke_premium(self, phone: str, now: Optional[datetime] = None) -> Optional[StudentRecord]:
        """
        Lock a student back to free, effective immediately. premium_until is set to
        now so the record reads as expired. Returns None for unknown phones.
        """
        now = now or datetime.now(timezone.utc)
        async with await self.lock_for(phone):
            record = await self.load_for_turn(phone, now)
            if record is None:
                return None
            record.plan = Plan.FREE
            record.premium_until = now
            await self._upsert(phone, {
                "plan": record.plan.value,
                "premium_until": record.premium_until,
                "payment_provider": record.payment_provider,
            })
            logger.info(f"Premium revoked for {phone}")
            return record

    async def all_records(self) -> list[StudentRecord]:
        """Durable rows overlaid with cached copies. Used by admin stats."""
        try:
            rows = await run_in_threadpool(self.durable.list_all)
        except Exception as e:
            logger.error(f"Durable list failed, stats from cache only: {e}")
            rows = []
        records = {phone: StudentRecord.from_fields(phone, data) for phone, data in rows}
        records.update(self._cache)
        return list(records.values())


# ─── Singleton ───────────────────────────────────────────────────────────────

_instance: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    global _instance
    if _instance is None:
        _instance = SessionStore(SqlRecordStore())
    return _instance
