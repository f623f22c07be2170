"""
Jovika Kito v2.0 — Student Record Schema

Every phone identity has ONE StudentRecord. All handlers read from it and write to it.
This is the single source of truth for a student inside the process.

Stage is a tagged variant:
    AskName | AskLanguage | Learning(awaiting)
so an expected phrase can only exist while the student is Learning.

Persistence Rules:
- stage: only advances ask_name → ask_language → learning. Never regresses.
- plan / premium_until / payment_provider: entitlement fields. Guarded by the
  anti-downgrade rules in app/state/store.py.
- created_at: written once, on the first upsert.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


class Stage(str, Enum):
    """Three stages. Order matters: a record never moves backwards."""
    ASK_NAME = "ask_name"
    ASK_LANGUAGE = "ask_language"
    LEARNING = "learning"


class Plan(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


_STAGE_ORDER = {Stage.ASK_NAME: 0, Stage.ASK_LANGUAGE: 1, Stage.LEARNING: 2}

ENTITLEMENT_FIELDS = ("plan", "premium_until", "payment_provider")


# ─── Stage Variant ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AwaitingRepeat:
    """The phrase the student was asked to repeat, and when."""
    expected_text: str
    set_at: datetime


@dataclass(frozen=True)
class AskName:
    stage = Stage.ASK_NAME


@dataclass(frozen=True)
class AskLanguage:
    stage = Stage.ASK_LANGUAGE


@dataclass(frozen=True)
class Learning:
    awaiting: Optional[AwaitingRepeat] = None
    stage = Stage.LEARNING


StageState = Union[AskName, AskLanguage, Learning]


def stage_state_for(stage: Stage, awaiting: Optional[AwaitingRepeat] = None) -> StageState:
    """Build the variant for a stage. awaiting is dropped outside Learning."""
    if stage == Stage.LEARNING:
        return Learning(awaiting=awaiting)
    if stage == Stage.ASK_LANGUAGE:
        return AskLanguage()
    return AskName()


def parse_stage(value) -> Stage:
    """Unknown or missing stage strings fall back to ask_name."""
    try:
        return Stage(value)
    except ValueError:
        return Stage.ASK_NAME


def parse_plan(value) -> Plan:
    try:
        return Plan(value)
    except ValueError:
        return Plan.FREE


def normalize_phone(value: Optional[str]) -> str:
    """Digits only: "+244 923-000-111" → "244923000111". Z-API phones are already in this form."""
    return "".join(ch for ch in (value or "") if ch.isdigit())


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything in the engine is UTC-aware."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ─── Student Record ──────────────────────────────────────────────────────────

@dataclass
class StudentRecord:
    """
    Complete per-student state.

    Handlers mutate this object in place; the session store persists it
    after every mutation.
    """
    # ─── Identity ────────────────────────────────────────────────────────────
    phone: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_message_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # ─── Onboarding ──────────────────────────────────────────────────────────
    name: Optional[str] = None
    target_language: Optional[str] = None   # "en" | "fr"
    level: str = "A0"
    chat_mode: Optional[str] = None

    # ─── FSM ─────────────────────────────────────────────────────────────────
    stage_state: StageState = field(default_factory=AskName)

    # ─── Lesson position ─────────────────────────────────────────────────────
    lesson_index: int = 0
    part_index: int = 0

    # ─── Entitlement ─────────────────────────────────────────────────────────
    plan: Plan = Plan.FREE
    premium_until: Optional[datetime] = None
    payment_provider: Optional[str] = None
    last_sales_message_at: Optional[datetime] = None
    last_premium_expired_notice_at: Optional[datetime] = None

    # ─── Conversation ────────────────────────────────────────────────────────
    messages_count: int = 0
    history: list = field(default_factory=list)

    # ─── Stage helpers ───────────────────────────────────────────────────────

    @property
    def stage(self) -> Stage:
        return self.stage_state.stage

    @property
    def awaiting_repeat(self) -> Optional[AwaitingRepeat]:
        if isinstance(self.stage_state, Learning):
            return self.stage_state.awaiting
        return None

    def advance_to(self, new_stage: Stage) -> None:
        """
        Move forward to new_stage. Requests to move backwards are ignored.
        Re-entering the current stage keeps its state.
        """
        if _STAGE_ORDER[new_stage] <= _STAGE_ORDER[self.stage]:
            return
        self.stage_state = stage_state_for(new_stage)

    def set_awaiting(self, expected_text: str, now: datetime) -> None:
        if not isinstance(self.stage_state, Learning):
            raise ValueError(f"Cannot await a repeat in stage {self.stage.value}")
        self.stage_state = Learning(awaiting=AwaitingRepeat(expected_text, now))

    def clear_awaiting(self) -> None:
        if isinstance(self.stage_state, Learning):
            self.stage_state = Learning(awaiting=None)

    # ─── Conversation helpers ────────────────────────────────────────────────

    def add_to_history(self, role: str, content: str, max_entries: int) -> None:
        """Append a turn and keep only the most recent max_entries."""
        self.history.append({"role": role, "content": content})
        if len(self.history) > max_entries:
            del self.history[:-max_entries]

    def copy(self) -> "StudentRecord":
        return copy.deepcopy(self)

    # ─── Serialization ───────────────────────────────────────────────────────

    def to_fields(self) -> dict:
        """Full durable field set. Column names match app.models.Student."""
        awaiting = self.awaiting_repeat
        return {
            "name": self.name,
            "target_language": self.target_language,
            "level": self.level,
            "stage": self.stage.value,
            "chat_mode": self.chat_mode,
            "lesson_index": self.lesson_index,
            "part_index": self.part_index,
            "awaiting_expected_text": awaiting.expected_text if awaiting else None,
            "awaiting_set_at": awaiting.set_at if awaiting else None,
            "plan": self.plan.value,
            "premium_until": self.premium_until,
            "payment_provider": self.payment_provider,
            "last_sales_message_at": self.last_sales_message_at,
            "last_premium_expired_notice_at": self.last_premium_expired_notice_at,
            "messages_count": self.messages_count,
            "history": list(self.history),
            "created_at": self.created_at,
            "last_message_at": self.last_message_at,
        }

    @classmethod
    def from_fields(cls, phone: str, data: dict) -> "StudentRecord":
        """Deserialize from a durable row dict. Missing keys take defaults."""
        stage = parse_stage(data.get("stage") or Stage.ASK_NAME.value)
        awaiting = None
        if data.get("awaiting_expected_text"):
            awaiting = AwaitingRepeat(
                expected_text=data["awaiting_expected_text"],
                set_at=ensure_utc(data.get("awaiting_set_at")) or datetime.now(timezone.utc),
            )
        record = cls(phone=phone)
        record.stage_state = stage_state_for(stage, awaiting)
        record.name = data.get("name")
        record.target_language = data.get("target_language")
        record.level = data.get("level") or "A0"
        record.chat_mode = data.get("chat_mode")
        record.lesson_index = max(int(data.get("lesson_index") or 0), 0)
        record.part_index = max(int(data.get("part_index") or 0), 0)
        record.plan = parse_plan(data.get("plan") or Plan.FREE.value)
        record.premium_until = ensure_utc(data.get("premium_until"))
        record.payment_provider = data.get("payment_provider")
        record.last_sales_message_at = ensure_utc(data.get("last_sales_message_at"))
        record.last_premium_expired_notice_at = ensure_utc(data.get("last_premium_expired_notice_at"))
        record.messages_count = int(data.get("messages_count") or 0)
        record.history = list(data.get("history") or [])
        if data.get("created_at"):
            record.created_at = ensure_utc(data["created_at"])
        if data.get("last_message_at"):
            record.last_message_at = ensure_utc(data["last_message_at"])
        return record
