"""Shared fixtures: in-memory durable store, mock collaborators, a fixed clock."""

from datetime import datetime, timedelta, timezone

import pytest

from app.state.dedupe import DedupeGuard
from app.state.session import Learning, AwaitingRepeat, Plan, Stage, StudentRecord
from app.state.store import InMemoryRecordStore, SessionStore
from app.transport.zapi import MockTransport
from app.tutor.llm import MockLLM
from app.tutor.orchestrator import SessionOrchestrator
from app.voice.tts import MockTTS

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def durable():
    return InMemoryRecordStore()


@pytest.fixture
def store(durable):
    return SessionStore(durable)


@pytest.fixture
def transport():
    return MockTransport()


@pytest.fixture
def tts():
    return MockTTS()


@pytest.fixture
def llm():
    return MockLLM()


@pytest.fixture
def orchestrator(store, transport, tts, llm):
    return SessionOrchestrator(
        store=store,
        dedupe=DedupeGuard(max_ids=100),
        transport=transport,
        tts=tts,
        llm=llm,
        hard_paywall=True,
    )


def make_record(phone="244900000001", **overrides) -> StudentRecord:
    """A record with sane defaults; stage/awaiting via stage= and expected=."""
    stage = overrides.pop("stage", Stage.ASK_NAME)
    expected = overrides.pop("expected", None)
    record = StudentRecord(phone=phone, created_at=NOW - timedelta(days=3), last_message_at=NOW - timedelta(hours=1))
    record.messages_count = 5
    for key, value in overrides.items():
        setattr(record, key, value)
    if stage == Stage.LEARNING:
        awaiting = AwaitingRepeat(expected, NOW - timedelta(minutes=5)) if expected else None
        record.stage_state = Learning(awaiting=awaiting)
    else:
        record.advance_to(stage)
    return record


def make_premium(phone="244900000001", days=10, **overrides) -> StudentRecord:
    return make_record(phone, plan=Plan.PREMIUM, premium_until=NOW + timedelta(days=days), **overrides)
