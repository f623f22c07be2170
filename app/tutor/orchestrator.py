"""
Jovika Kito v2.0 — Session Orchestrator
THE MAIN LOOP. One inbound message in, at most one outbound message out.

    dedupe (messageId, then momment) → validate → per-phone lock →
    load + reconcile (or allocate) → paywall (may stop) →
    stage dispatch → history → persist → send

Everything inside the lock runs for one phone at a time. Persistence happens
on every path that reaches the record, including paywall silence.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from app.config import HARD_PAYWALL, HISTORY_MAX_TURNS
from app.fsm.handlers import TurnReply, handle_state
from app.state.dedupe import DedupeGuard
from app.state.session import StudentRecord
from app.state.store import SessionStore
from app.transport.zapi import Transport
from app.tutor.input_classifier import classify
from app.tutor.paywall import apply_paywall

logger = logging.getLogger("kito.orchestrator")


@dataclass
class InboundMessage:
    phone: str
    text: str
    message_id: Optional[str] = None
    moment: Optional[str] = None          # Z-API "momment" timestamp
    profile_name: Optional[str] = None    # WhatsApp senderName / chatName
    is_audio: bool = False                # text is a voice-note transcription


@dataclass
class TurnOutcome:
    status: str                           # "ok" | "invalid" | "duplicate" | "paywall_notice" | "paywall_silent"
    replies: list = field(default_factory=list)
    record: Optional[StudentRecord] = None


class SessionOrchestrator:
    def __init__(
        self,
        store: SessionStore,
        dedupe: DedupeGuard,
        transport: Transport,
        tts=None,
        llm=None,
        hard_paywall: bool = HARD_PAYWALL,
        history_max_turns: int = HISTORY_MAX_TURNS,
    ):
        self.store = store
        self.dedupe = dedupe
        self.transport = transport
        self.tts = tts
        self.llm = llm
        self.hard_paywall = hard_paywall
        self.history_max_turns = history_max_turns

    async def handle(self, msg: InboundMessage, now: Optional[datetime] = None) -> TurnOutcome:
        """Full turn: dedupe, then process."""
        if msg.phone and not self.admit(msg):
            return TurnOutcome(status="duplicate")
        return await self.process(msg, now)

    def admit(self, msg: InboundMessage) -> bool:
        """
        Both dedupe lines. Records the message as seen, so call it once per
        delivery (the webhook calls it before transcribing a voice note).
        """
        if not self.dedupe.should_process(msg.message_id):
            return False
        return self.dedupe.should_process_moment(msg.phone, msg.moment)

    async def process(self, msg: InboundMessage, now: Optional[datetime] = None) -> TurnOutcome:
        """A turn for an admitted message."""
        now = now or datetime.now(timezone.utc)
        text = (msg.text or "").strip()

        if not msg.phone or not text:
            logger.info(f"Ignored message without phone or text (id={msg.message_id})")
            return TurnOutcome(status="invalid")

        async with await self.store.lock_for(msg.phone):
            return await self._run_turn(msg, text, now)

    async def _run_turn(self, msg: InboundMessage, text: str, now: datetime) -> TurnOutcome:
        phone = msg.phone
        record = await self.store.load_for_turn(phone, now)
        if record is None:
            record = StudentRecord(phone=phone, created_at=now, last_message_at=now)
            logger.info(f"New student {phone} ({msg.profile_name or 'no profile name'})")

        first_contact = record.messages_count == 0
        record.messages_count += 1
        record.last_message_at = now

        classification = classify(text, record.stage.value)
        category = classification["category"]
        extras = classification["extras"]
        source = "voice" if msg.is_audio else "text"
        logger.info(f"{phone} [{record.stage.value}] {source} → {category}")

        # ─── Paywall ─────────────────────────────────────────────────────────
        if self.hard_paywall:
            decision = apply_paywall(record, extras.get("sales_intent", False), now)
            if decision.stop:
                await self.store.persist(phone, record, now)
                if decision.notice:
                    await self.transport.send_text(phone, decision.notice)
                    return TurnOutcome(status="paywall_notice", replies=[decision.notice], record=record)
                return TurnOutcome(status="paywall_silent", record=record)

        # ─── Stage dispatch ──────────────────────────────────────────────────
        reply = await handle_state(
            record, category, extras, text,
            now=now,
            first_contact=first_contact,
            profile_name=msg.profile_name,
            tts=self.tts,
            llm=self.llm,
        )

        record.add_to_history("user", text, self.history_max_turns)
        if reply.text:
            record.add_to_history("assistant", reply.text, self.history_max_turns)

        await self.store.persist(phone, record, now)
        await self._send(phone, reply)
        return TurnOutcome(status="ok", replies=[reply], record=record)

    async def _send(self, phone: str, reply: TurnReply) -> None:
        if reply.audio:
            await self.transport.send_audio(phone, reply.audio)
        elif reply.text:
            await self.transport.send_text(phone, reply.text)


# ─── Singleton ───────────────────────────────────────────────────────────────

_instance: Optional[SessionOrchestrator] = None


def get_orchestrator() -> SessionOrchestrator:
    """Process-wide orchestrator wired to the configured collaborators."""
    global _instance
    if _instance is None:
        from app.state.dedupe import get_dedupe_guard
        from app.state.store import get_session_store
        from app.transport.zapi import get_transport
        from app.tutor.llm import get_llm
        from app.voice.tts import get_tts

        _instance = SessionOrchestrator(
            store=get_session_store(),
            dedupe=get_dedupe_guard(),
            transport=get_transport(),
            tts=get_tts(),
            llm=get_llm(),
        )
    return _instance
