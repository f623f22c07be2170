"""
Jovika Kito v2.0 — STT Abstraction Layer
Voice notes from WhatsApp arrive as a media URL. We download the file and
transcribe it with OpenAI (Portuguese by default), then the text goes through
the same turn as a typed message.

Swap providers by changing config.STT_PROVIDER.
"""

import io
import time
import logging
from typing import Optional, Protocol

import httpx
from openai import OpenAI

from app.config import (
    OPENAI_API_KEY, STT_PROVIDER, STT_MODEL, STT_LANGUAGE, HTTP_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


class STTProvider(Protocol):
    def transcribe(self, audio: bytes, filename: str = "audio.ogg") -> Optional[str]: ...

    def transcribe_url(self, url: str) -> Optional[str]: ...


def download_media(url: str, timeout: float = HTTP_TIMEOUT_SECONDS) -> bytes:
    """Fetch a gateway media file. Raises on HTTP errors."""
    with httpx.Client(timeout=timeout, follow_redirects=True) as client:
        response = client.get(url)
        response.raise_for_status()
        return response.content


def _filename_for(url: str) -> str:
    tail = url.split("?", 1)[0].rsplit("/", 1)[-1]
    return tail if "." in tail else "audio.ogg"


# ─── OpenAI Transcription ────────────────────────────────────────────────────

class OpenAIWhisperSTT:

    def __init__(self, api_key: str = OPENAI_API_KEY, language: str = STT_LANGUAGE):
        self._client = OpenAI(api_key=api_key, timeout=HTTP_TIMEOUT_SECONDS)
        self._language = language

    def transcribe(self, audio: bytes, filename: str = "audio.ogg") -> Optional[str]:
        if not audio:
            return None
        start = time.perf_counter()
        try:
            buffer = io.BytesIO(audio)
            buffer.name = filename
            response = self._client.audio.transcriptions.create(
                model=STT_MODEL,
                file=buffer,
                language=self._language,
            )
        except Exception as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.error(f"STT [openai] error after {elapsed}ms: {e}")
            return None

        elapsed = int((time.perf_counter() - start) * 1000)
        text = (getattr(response, "text", "") or "").strip()
        logger.info(f"STT [openai]: {elapsed}ms, '{text[:60]}'")
        return text or None

    def transcribe_url(self, url: str) -> Optional[str]:
        try:
            audio = download_media(url)
        except httpx.HTTPError as e:
            logger.error(f"STT media download failed: {e}")
            return None
        return self.transcribe(audio, _filename_for(url))


# ─── Mock STT ────────────────────────────────────────────────────────────────

class MockSTT:
    """Returns a fixed transcript (None simulates a failure)."""

    def __init__(self, transcript: Optional[str] = "olá"):
        self.transcript = transcript
        self.urls: list[str] = []

    def transcribe(self, audio: bytes, filename: str = "audio.ogg") -> Optional[str]:
        return self.transcript

    def transcribe_url(self, url: str) -> Optional[str]:
        self.urls.append(url)
        return self.transcript


# ─── Provider Factory ────────────────────────────────────────────────────────

_providers = {
    "openai": OpenAIWhisperSTT,
    "mock": MockSTT,
}

_instance: Optional[STTProvider] = None
_disabled = False


def get_stt() -> Optional[STTProvider]:
    """Get the configured STT provider (singleton). None when disabled."""
    global _instance, _disabled
    if _instance is None and not _disabled:
        provider_cls = _providers.get(STT_PROVIDER)
        if not provider_cls:
            raise ValueError(f"Unknown STT provider: {STT_PROVIDER}")
        if provider_cls is OpenAIWhisperSTT and not OPENAI_API_KEY:
            _disabled = True
            logger.warning("OPENAI_API_KEY not set, voice note transcription disabled")
            return None
        _instance = provider_cls()
    return _instance
