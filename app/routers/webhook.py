"""
Jovika Kito v2.0 — Z-API Webhook Router
Inbound WhatsApp messages.

Always answers 200 with a status string so the gateway never redelivers:
    invalid_payload | ignored_non_received | ignored_from_me | duplicate_ignored | no_text_or_audio |
    audio_transcription_failed | ok_audio | ok | paywall | error
"""

import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, ValidationError

from app.tutor import replies
from app.tutor.orchestrator import InboundMessage, SessionOrchestrator, get_orchestrator
from app.voice.stt import get_stt

logger = logging.getLogger("kito.webhook")

router = APIRouter(tags=["webhook"])


# ─── Request Models ──────────────────────────────────────────────────────────

class ZApiText(BaseModel):
    model_config = ConfigDict(extra="allow")
    message: Optional[str] = None


class ZApiMedia(BaseModel):
    model_config = ConfigDict(extra="allow")
    url: Optional[str] = None
    audioUrl: Optional[str] = None


class ZApiCallback(BaseModel):
    """The subset of the Z-API ReceivedCallback payload we use. Everything else is kept but ignored."""
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    messageId: Optional[str] = None
    phone: Optional[str] = None
    momment: Optional[Union[int, str]] = None
    fromMe: bool = False
    senderName: Optional[str] = None
    chatName: Optional[str] = None
    text: Optional[ZApiText] = None
    audioUrl: Optional[str] = None
    audio: Optional[ZApiMedia] = None
    media: Optional[ZApiMedia] = None
    voice: Optional[ZApiMedia] = None

    @property
    def text_message(self) -> Optional[str]:
        if self.text and self.text.message and self.text.message.strip():
            return self.text.message
        return None

    @property
    def audio_url(self) -> Optional[str]:
        if self.audioUrl:
            return self.audioUrl
        for media in (self.audio, self.media, self.voice):
            if media is not None and (media.audioUrl or media.url):
                return media.audioUrl or media.url
        return None

    @property
    def profile_name(self) -> Optional[str]:
        return self.senderName or self.chatName


# ─── Dependencies ────────────────────────────────────────────────────────────

def orchestrator_dep() -> SessionOrchestrator:
    return get_orchestrator()


def stt_dep():
    return get_stt()


# ─── Webhook ─────────────────────────────────────────────────────────────────

@router.post("/zapi-webhook")
async def zapi_webhook(
    request: Request,
    orchestrator: SessionOrchestrator = Depends(orchestrator_dep),
    stt: Any = Depends(stt_dep),
):
    try:
        payload = await request.json()
        callback = ZApiCallback.model_validate(payload)
    except (ValueError, ValidationError) as e:
        logger.info(f"Webhook payload rejected: {e}")
        return {"status": "invalid_payload"}

    try:
        return {"status": await _handle_callback(callback, orchestrator, stt)}
    except Exception as e:
        logger.error(f"Webhook processing failed for {callback.phone}: {e}", exc_info=True)
        return {"status": "error"}


async def _handle_callback(callback: ZApiCallback, orchestrator: SessionOrchestrator, stt) -> str:
    if callback.type != "ReceivedCallback":
        return "ignored_non_received"
    if callback.fromMe:
        return "ignored_from_me"

    text = callback.text_message
    audio_url = callback.audio_url
    if not callback.phone or (not text and not audio_url):
        logger.info(f"No text or audio in message {callback.messageId}")
        return "no_text_or_audio"

    msg = InboundMessage(
        phone=callback.phone,
        text=text or "",
        message_id=callback.messageId,
        moment=str(callback.momment) if callback.momment is not None else None,
        profile_name=callback.profile_name,
    )
    if not orchestrator.admit(msg):
        return "duplicate_ignored"

    if text is None:
        transcript = None
        if stt is not None:
            transcript = await run_in_threadpool(stt.transcribe_url, audio_url)
        if not transcript:
            await orchestrator.transport.send_text(callback.phone, replies.audio_not_understood())
            return "audio_transcription_failed"
        msg.text = transcript
        msg.is_audio = True

    outcome = await orchestrator.process(msg)
    if outcome.status.startswith("paywall"):
        return "paywall"
    if outcome.status != "ok":
        return "no_text_or_audio"
    return "ok_audio" if msg.is_audio else "ok"
