"""
Jovika Kito v2.0 — Stage Handlers

One function per stage, plus the interceptors that run before the lesson
engine. Each handler receives:
    - record: StudentRecord (mutated in place)
    - category: str (from input_classifier.classify)
    - extras: dict (name / language / phrase / mode / sales_intent)
    - text: str (student's input)

Each handler returns a TurnReply: exactly one outbound message, text or audio.

Dispatch (handle_state):
    ask_name / ask_language → onboarding
    AUDIO_REQUEST           → handle_audio_request (never touches lesson state)
    MODE_SWITCH             → handle_mode_switch
    learning + language     → handle_learning
    anything else           → handle_open_ended
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi.concurrency import run_in_threadpool

from app.config import AUDIO_REQUIRE_EXPLICIT_TEXT, DEFAULT_STUDENT_NAME, SUPPORTED_LANGUAGES
from app.content.curriculum import find_part_by_text
from app.state.session import Learning, Stage, StudentRecord
from app.tutor import replies
from app.tutor.answer_checker import check_repetition
from app.tutor.state_machine import current_position, next_position

logger = logging.getLogger("kito.fsm.handlers")


@dataclass
class TurnReply:
    """What the orchestrator sends back. audio wins over text when present."""
    text: Optional[str] = None
    audio: Optional[bytes] = None
    kind: str = "text"


# ─── Onboarding ──────────────────────────────────────────────────────────────

async def handle_ask_name(
    record: StudentRecord,
    category: str,
    extras: Dict[str, Any],
    text: str,
    *,
    now: datetime,
    first_contact: bool = False,
    profile_name: Optional[str] = None,
    **_,
) -> TurnReply:
    """
    ASK_NAME: waiting for the student to tell us what to call them.

    Greeting-only, ack-only and empty messages do not carry a name. On first
    contact they get the welcome; later they get a short re-prompt.
    """
    if category in ("EMPTY", "ACK") or not extras.get("has_content"):
        if first_contact:
            return TurnReply(text=replies.welcome(profile_name), kind="welcome")
        return TurnReply(text=replies.ask_name_again(), kind="ask_name")

    record.name = extras.get("name") or DEFAULT_STUDENT_NAME
    record.advance_to(Stage.ASK_LANGUAGE)
    logger.info(f"{record.phone}: name='{record.name}' → ask_language")
    return TurnReply(text=replies.ask_language(record.name), kind="ask_language")


async def handle_ask_language(
    record: StudentRecord,
    category: str,
    extras: Dict[str, Any],
    text: str,
    *,
    now: datetime,
    **_,
) -> TurnReply:
    """ASK_LANGUAGE: exactly one supported language moves the student into lessons."""
    language = extras.get("language")
    if category != "LANGUAGE_CHOICE" or language not in SUPPORTED_LANGUAGES:
        return TurnReply(text=replies.ask_language_again(), kind="ask_language")

    record.target_language = language
    record.lesson_index = 0
    record.part_index = 0
    record.advance_to(Stage.LEARNING)
    record.clear_awaiting()

    position = current_position(language, 0, 0)
    record.set_awaiting(position.part.text, now)
    logger.info(f"{record.phone}: language={language} → learning")

    return TurnReply(
        text=replies.language_chosen(record.name, language) + "\n\n" + replies.repeat_prompt(position),
        kind="lesson_prompt",
    )


# ─── Lesson Engine ───────────────────────────────────────────────────────────

async def handle_learning(
    record: StudentRecord,
    category: str,
    extras: Dict[str, Any],
    text: str,
    *,
    now: datetime,
    **_,
) -> TurnReply:
    """
    LEARNING: guided repetition.

    No expected phrase → show the current part and start waiting for it.
    Ack-only → re-prompt the literal expected phrase, nothing changes.
    Below threshold → re-prompt the same phrase, nothing changes.
    At/above threshold → advance one part and prompt the next one.
    """
    language = record.target_language
    here = current_position(language, record.lesson_index, record.part_index)
    record.lesson_index, record.part_index = here.lesson_index, here.part_index

    awaiting = record.awaiting_repeat
    if awaiting is None:
        record.set_awaiting(here.part.text, now)
        return TurnReply(text=replies.repeat_prompt(here), kind="lesson_prompt")

    verdict = check_repetition(awaiting.expected_text, text)

    if verdict.verdict == "ACK_ONLY":
        logger.info(f"{record.phone}: ack is not an answer, expected='{awaiting.expected_text}'")
        return TurnReply(text=replies.ack_is_not_answer(awaiting.expected_text), kind="retry")

    if not verdict.correct:
        logger.info(f"{record.phone}: retry score={verdict.score:.2f}")
        part = find_part_by_text(language, awaiting.expected_text)
        return TurnReply(
            text=replies.try_again(awaiting.expected_text, part.phonetic_hint if part else None),
            kind="retry",
        )

    record.clear_awaiting()
    following = next_position(language, here.lesson_index, here.part_index)
    record.lesson_index, record.part_index = following.lesson_index, following.part_index
    record.set_awaiting(following.part.text, now)
    logger.info(
        f"{record.phone}: correct score={verdict.score:.2f} "
        f"→ lesson {following.lesson_index} part {following.part_index}"
    )
    return TurnReply(text=replies.success(following), kind="success")


# ─── Interceptors ────────────────────────────────────────────────────────────

def _default_audio_phrase(record: StudentRecord) -> Optional[str]:
    """The expected phrase, else the current part. None before a language is chosen."""
    if record.awaiting_repeat is not None:
        return record.awaiting_repeat.expected_text
    if record.stage == Stage.LEARNING and record.target_language:
        return current_position(record.target_language, record.lesson_index, record.part_index).part.text
    return None


async def handle_audio_request(
    record: StudentRecord,
    category: str,
    extras: Dict[str, Any],
    text: str,
    *,
    now: datetime,
    tts=None,
    require_explicit_text: bool = AUDIO_REQUIRE_EXPLICIT_TEXT,
    **_,
) -> TurnReply:
    """
    Send a pronunciation audio. Reads the record, never mutates it.
    Synthesis failure degrades to the phrase and its phonetic hint as text.
    """
    phrase = extras.get("phrase")
    if not phrase:
        if require_explicit_text:
            return TurnReply(text=replies.audio_which_phrase(), kind="audio_prompt")
        phrase = _default_audio_phrase(record)
        if not phrase:
            return TurnReply(text=replies.audio_which_phrase(), kind="audio_prompt")

    audio = None
    if tts is not None:
        audio = await run_in_threadpool(tts.synthesize, phrase, record.target_language or "en")

    if audio:
        logger.info(f"{record.phone}: audio for '{phrase}' ({len(audio)} bytes)")
        return TurnReply(audio=audio, text=phrase, kind="audio")

    part = find_part_by_text(record.target_language, phrase)
    return TurnReply(
        text=replies.audio_fallback(phrase, part.phonetic_hint if part else None),
        kind="audio_fallback",
    )


async def handle_mode_switch(
    record: StudentRecord,
    category: str,
    extras: Dict[str, Any],
    text: str,
    *,
    now: datetime,
    **_,
) -> TurnReply:
    """Toggle between free conversation and guided lessons."""
    mode = extras.get("mode")
    record.chat_mode = mode
    logger.info(f"{record.phone}: chat_mode={mode}")
    if mode == "chat":
        return TurnReply(text=replies.chat_mode_on(), kind="mode")

    if record.stage == Stage.LEARNING and record.target_language:
        here = current_position(record.target_language, record.lesson_index, record.part_index)
        if record.awaiting_repeat is None:
            record.set_awaiting(here.part.text, now)
        return TurnReply(text=replies.chat_mode_off() + "\n\n" + replies.repeat_prompt(here), kind="lesson_prompt")
    return TurnReply(text=replies.chat_mode_off(), kind="mode")


# ─── Open-ended Fallback ─────────────────────────────────────────────────────

async def handle_open_ended(
    record: StudentRecord,
    category: str,
    extras: Dict[str, Any],
    text: str,
    *,
    now: datetime,
    llm=None,
    **_,
) -> TurnReply:
    """
    Free conversation. Ack-only gets a generic re-prompt; everything else goes
    to the completion model. A failed completion still produces a reply.
    """
    if category in ("EMPTY", "ACK"):
        return TurnReply(text=replies.generic_reprompt(), kind="reprompt")
    if llm is None:
        logger.warning(f"{record.phone}: completion disabled, sending apology")
        return TurnReply(text=replies.apology(), kind="apology")

    try:
        answer = await run_in_threadpool(llm.complete, record, text)
    except Exception as e:
        logger.error(f"{record.phone}: completion failed: {e}", exc_info=True)
        return TurnReply(text=replies.apology(), kind="apology")

    if not answer or not answer.strip():
        return TurnReply(text=replies.apology(), kind="apology")
    return TurnReply(text=answer.strip(), kind="chat")


# ─── Dispatch ────────────────────────────────────────────────────────────────

HANDLERS = {
    Stage.ASK_NAME: handle_ask_name,
    Stage.ASK_LANGUAGE: handle_ask_language,
}


async def handle_state(
    record: StudentRecord,
    category: str,
    extras: Dict[str, Any],
    text: str,
    **kwargs,
) -> TurnReply:
    """
    Main entry point for stage handling.

    kwargs are passed through: now, first_contact, profile_name, tts, llm.
    """
    handler = HANDLERS.get(record.stage)
    if handler is not None:
        return await handler(record, category, extras, text, **kwargs)

    if category == "AUDIO_REQUEST":
        return await handle_audio_request(record, category, extras, text, **kwargs)

    if category == "MODE_SWITCH":
        return await handle_mode_switch(record, category, extras, text, **kwargs)

    in_lesson = (
        isinstance(record.stage_state, Learning)
        and record.target_language in SUPPORTED_LANGUAGES
        and record.chat_mode != "chat"
    )
    if in_lesson:
        return await handle_learning(record, category, extras, text, **kwargs)

    return await handle_open_ended(record, category, extras, text, **kwargs)
