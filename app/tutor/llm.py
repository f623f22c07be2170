"""
Jovika Kito v2.0 — LLM Abstraction Layer
Conversational completion for the open-ended fallback. Errors propagate:
the caller turns them into an apology.
"""

import time
import logging
from typing import Protocol, Optional
from dataclasses import dataclass

from openai import OpenAI

from app.config import (
    OPENAI_API_KEY, LLM_MODEL, LLM_MAX_TOKENS, LLM_TEMPERATURE,
    LLM_PROVIDER, HTTP_TIMEOUT_SECONDS,
)
from app.state.session import StudentRecord
from app.tutor.instruction_builder import build_messages

logger = logging.getLogger(__name__)


@dataclass
class LLMResult:
    text: str
    latency_ms: int
    model: str
    usage: dict


class LLMProvider(Protocol):
    def generate(self, messages: list[dict], **kwargs) -> LLMResult: ...

    def complete(self, record: StudentRecord, user_text: str) -> str: ...


# ─── OpenAI Chat ─────────────────────────────────────────────────────────────

class OpenAIChat:
    def __init__(self, api_key: str = OPENAI_API_KEY, model: str = LLM_MODEL):
        self._client = OpenAI(api_key=api_key, timeout=HTTP_TIMEOUT_SECONDS)
        self._model = model

    def generate(
        self,
        messages: list[dict],
        max_tokens: int = LLM_MAX_TOKENS,
        temperature: float = LLM_TEMPERATURE,
    ) -> LLMResult:
        start = time.perf_counter()
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
            elapsed = int((time.perf_counter() - start) * 1000)
            content = response.choices[0].message.content
            text = (content or "").strip()
            usage = {}
            if response.usage:
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }
            logger.info(f"LLM response: {elapsed}ms, {usage.get('total_tokens', '?')} tokens")
            return LLMResult(text=text, latency_ms=elapsed, model=self._model, usage=usage)
        except Exception as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.error(f"LLM error after {elapsed}ms: {e}")
            raise

    def complete(self, record: StudentRecord, user_text: str) -> str:
        """Kito's answer to a free-form message, in the student's context."""
        return self.generate(build_messages(record, user_text)).text


# ─── Mock (tests) ────────────────────────────────────────────────────────────

class MockLLM:
    """Canned answers. Set fail=True to exercise the apology path."""

    def __init__(self, answer: str = "Olá! Vamos praticar?", fail: bool = False):
        self.answer = answer
        self.fail = fail
        self.calls: list[list[dict]] = []

    def generate(self, messages: list[dict], **kwargs) -> LLMResult:
        self.calls.append(messages)
        if self.fail:
            raise RuntimeError("mock LLM failure")
        return LLMResult(text=self.answer, latency_ms=0, model="mock", usage={})

    def complete(self, record: StudentRecord, user_text: str) -> str:
        return self.generate(build_messages(record, user_text)).text


# ─── Provider Factory ────────────────────────────────────────────────────────

_providers = {
    "openai": OpenAIChat,
    "mock": MockLLM,
}

_instance: Optional[LLMProvider] = None
_disabled = False


def get_llm() -> Optional[LLMProvider]:
    """
    Get the configured LLM provider (singleton).
    None when the OpenAI provider has no API key: the fallback then apologizes.
    """
    global _instance, _disabled
    if _instance is None and not _disabled:
        provider_cls = _providers.get(LLM_PROVIDER)
        if not provider_cls:
            raise ValueError(f"Unknown LLM provider: {LLM_PROVIDER}")
        if provider_cls is OpenAIChat and not OPENAI_API_KEY:
            _disabled = True
            logger.warning("OPENAI_API_KEY not set, conversational completion disabled")
            return None
        _instance = provider_cls()
    return _instance
