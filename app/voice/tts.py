"""
Jovika Kito v2.0 — TTS Abstraction Layer
OpenAI speech for pronunciation audios. Curriculum phrases repeat a lot, so
synthesized audio is cached on disk by (text, language, voice).

synthesize() never raises: None means "send the text fallback instead".
"""

import time
import logging
import hashlib
from pathlib import Path
from typing import Optional, Protocol

from openai import OpenAI

from app.config import (
    OPENAI_API_KEY, TTS_PROVIDER, TTS_MODEL, TTS_VOICE, TTS_MAX_CHARS,
    AUDIO_CACHE_DIR, HTTP_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

# Spoken slowly and clearly, in the target language's native accent
_INSTRUCTIONS = {
    "en": "Speak slowly and clearly in English, like a friendly teacher modelling pronunciation.",
    "fr": "Parle lentement et clairement en français, comme un professeur qui montre la prononciation.",
}


class TTSProvider(Protocol):
    def synthesize(self, text: str, language: str) -> Optional[bytes]: ...


# ─── Mock TTS (for testing when API unavailable) ─────────────────────────────

class MockTTS:
    """Returns fixed bytes, or None when fail=True. Records every call."""

    def __init__(self, audio: bytes = b"ID3mock", fail: bool = False):
        self.audio = audio
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    def synthesize(self, text: str, language: str = "en") -> Optional[bytes]:
        self.calls.append((text, language))
        logger.info(f"TTS [mock]: '{text[:50]}'")
        return None if self.fail else self.audio


# ─── OpenAI Speech ───────────────────────────────────────────────────────────

class OpenAISpeechTTS:

    def __init__(self, api_key: str = OPENAI_API_KEY, cache_dir: Optional[Path] = AUDIO_CACHE_DIR):
        self._client = OpenAI(api_key=api_key, timeout=HTTP_TIMEOUT_SECONDS)
        self._cache_dir = cache_dir

    def synthesize(self, text: str, language: str = "en") -> Optional[bytes]:
        if not text or not text.strip():
            return None
        if len(text) > TTS_MAX_CHARS:
            text = text[:TTS_MAX_CHARS]
            logger.warning(f"TTS text truncated to {TTS_MAX_CHARS} chars")

        cache_path = self._cache_path(text, language)
        if cache_path is not None and cache_path.exists():
            logger.info(f"TTS [cache hit]: {cache_path.name}")
            return cache_path.read_bytes()

        start = time.perf_counter()
        try:
            response = self._client.audio.speech.create(
                model=TTS_MODEL,
                voice=TTS_VOICE,
                input=text,
                instructions=_INSTRUCTIONS.get(language, _INSTRUCTIONS["en"]),
                response_format="mp3",
            )
            audio_bytes = response.content
        except Exception as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.error(f"TTS [openai] error after {elapsed}ms: {e}")
            return None

        elapsed = int((time.perf_counter() - start) * 1000)
        if not audio_bytes:
            logger.error("TTS [openai] returned empty audio")
            return None

        if cache_path is not None:
            try:
                cache_path.parent.mkdir(parents=True, exist_ok=True)
                cache_path.write_bytes(audio_bytes)
            except OSError as e:
                logger.warning(f"TTS cache write failed: {e}")

        logger.info(f"TTS [openai]: {elapsed}ms, {len(audio_bytes)} bytes, lang={language}")
        return audio_bytes

    def _cache_path(self, text: str, language: str) -> Optional[Path]:
        if self._cache_dir is None:
            return None
        raw = f"{text}|{language}|{TTS_VOICE}|{TTS_MODEL}"
        return self._cache_dir / f"{hashlib.sha256(raw.encode()).hexdigest()[:16]}.mp3"


# ─── Provider Factory ────────────────────────────────────────────────────────

_providers = {
    "openai": OpenAISpeechTTS,
    "mock": MockTTS,
}

_instance: Optional[TTSProvider] = None
_disabled = False


def get_tts() -> Optional[TTSProvider]:
    """
    Get the configured TTS provider (singleton).
    None when OpenAI is selected without an API key: audio requests fall back to text.
    """
    global _instance, _disabled
    if _instance is None and not _disabled:
        provider_cls = _providers.get(TTS_PROVIDER)
        if not provider_cls:
            raise ValueError(f"Unknown TTS provider: {TTS_PROVIDER}")
        if provider_cls is OpenAISpeechTTS and not OPENAI_API_KEY:
            _disabled = True
            logger.warning("OPENAI_API_KEY not set, speech synthesis disabled")
            return None
        _instance = provider_cls()
    return _instance
