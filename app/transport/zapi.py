"""
Jovika Kito v2.0 — Messaging Transport
Outbound WhatsApp messages through the Z-API gateway.

Fire-and-forget from the engine's point of view: send_* never raises.
Failures are logged and reported through the boolean return value.
"""

import base64
import logging
from typing import Optional, Protocol

import httpx

from app.config import (
    TRANSPORT_PROVIDER, ZAPI_BASE_URL, ZAPI_INSTANCE_ID, ZAPI_INSTANCE_TOKEN,
    ZAPI_CLIENT_TOKEN, HTTP_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send_text(self, phone: str, text: str) -> bool: ...

    async def send_audio(self, phone: str, audio: bytes) -> bool: ...


# ─── Z-API ───────────────────────────────────────────────────────────────────

class ZApiTransport:
    """
    POST {base}/instances/{id}/token/{token}/send-text   {"phone", "message"}
    POST {base}/instances/{id}/token/{token}/send-audio  {"phone", "audio": data URI}
    """

    def __init__(
        self,
        instance_id: str = ZAPI_INSTANCE_ID,
        instance_token: str = ZAPI_INSTANCE_TOKEN,
        client_token: str = ZAPI_CLIENT_TOKEN,
        base_url: str = ZAPI_BASE_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self._root = f"{base_url.rstrip('/')}/instances/{instance_id}/token/{instance_token}"
        self._headers = {"Content-Type": "application/json"}
        if client_token:
            self._headers["Client-Token"] = client_token
        self._timeout = timeout

    async def send_text(self, phone: str, text: str) -> bool:
        return await self._post("send-text", {"phone": phone, "message": text})

    async def send_audio(self, phone: str, audio: bytes) -> bool:
        data_uri = "data:audio/mpeg;base64," + base64.b64encode(audio).decode("ascii")
        return await self._post("send-audio", {"phone": phone, "audio": data_uri})

    async def _post(self, endpoint: str, payload: dict) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(f"{self._root}/{endpoint}", json=payload, headers=self._headers)
                if response.status_code >= 400:
                    logger.error(f"Z-API {endpoint} HTTP {response.status_code}: {response.text[:300]}")
                response.raise_for_status()
        except Exception as e:
            logger.error(f"Z-API {endpoint} to {payload.get('phone')} failed: {e}")
            return False
        logger.info(f"Z-API {endpoint} → {payload.get('phone')}")
        return True


# ─── Mock Transport ──────────────────────────────────────────────────────────

class MockTransport:
    """Records every outbound message. Used in tests and when Z-API is not configured."""

    def __init__(self):
        self.sent: list[tuple[str, str, object]] = []  # (kind, phone, payload)

    async def send_text(self, phone: str, text: str) -> bool:
        self.sent.append(("text", phone, text))
        logger.info(f"Transport [mock] text → {phone}: '{text[:60]}'")
        return True

    async def send_audio(self, phone: str, audio: bytes) -> bool:
        self.sent.append(("audio", phone, audio))
        logger.info(f"Transport [mock] audio → {phone}: {len(audio)} bytes")
        return True

    def texts_to(self, phone: str) -> list[str]:
        return [payload for kind, to, payload in self.sent if kind == "text" and to == phone]


# ─── Provider Factory ────────────────────────────────────────────────────────

_instance: Optional[Transport] = None


def get_transport() -> Transport:
    """
    Get the configured transport (singleton).
    Z-API without instance credentials degrades to the mock, logged once.
    """
    global _instance
    if _instance is None:
        if TRANSPORT_PROVIDER == "mock":
            _instance = MockTransport()
        elif TRANSPORT_PROVIDER == "zapi":
            if ZAPI_INSTANCE_ID and ZAPI_INSTANCE_TOKEN:
                _instance = ZApiTransport()
            else:
                logger.error("ZAPI_INSTANCE_ID / ZAPI_INSTANCE_TOKEN missing, outbound messages go to the mock transport")
                _instance = MockTransport()
        else:
            raise ValueError(f"Unknown transport provider: {TRANSPORT_PROVIDER}")
    return _instance
