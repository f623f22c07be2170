"""
Jovika Kito v2.0 — Payments Router
Completed-checkout events from the payment processor grant premium.

The student is identified by the phone carried in the checkout:
client_reference_id first, then metadata.phone. Both Stripe-style envelopes
({"type", "data": {"object": {...}}}) and flat bodies are accepted.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, ConfigDict

from app.config import PAYMENT_WEBHOOK_SECRET, PAYMENT_PROVIDER_NAME, PREMIUM_DEFAULT_DAYS
from app.state.session import normalize_phone
from app.state.store import SessionStore, get_session_store

logger = logging.getLogger("kito.payments")

router = APIRouter(prefix="/payments", tags=["payments"])

COMPLETED_EVENTS = frozenset({
    "checkout.session.completed",
    "checkout.completed",
    "payment.succeeded",
})


# ─── Request Models ──────────────────────────────────────────────────────────

class PaymentEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    data: Optional[dict] = None
    client_reference_id: Optional[str] = None
    metadata: Optional[dict] = None

    def checkout(self) -> dict:
        """The checkout object, wherever the envelope put it."""
        if self.data and isinstance(self.data.get("object"), dict):
            return self.data["object"]
        return {"client_reference_id": self.client_reference_id, "metadata": self.metadata or {}}

    def phone(self) -> str:
        checkout = self.checkout()
        metadata = checkout.get("metadata") or {}
        return normalize_phone(checkout.get("client_reference_id") or metadata.get("phone"))

    def days(self) -> int:
        metadata = self.checkout().get("metadata") or {}
        try:
            days = int(metadata.get("days", PREMIUM_DEFAULT_DAYS))
        except (TypeError, ValueError):
            return PREMIUM_DEFAULT_DAYS
        return days if days > 0 else PREMIUM_DEFAULT_DAYS


class PaymentResult(BaseModel):
    status: str
    phone: Optional[str] = None
    premium_until: Optional[str] = None


# ─── Dependencies ────────────────────────────────────────────────────────────

def store_dep() -> SessionStore:
    return get_session_store()


def verify_secret(x_webhook_secret: Optional[str] = Header(default=None)) -> None:
    """Shared-secret check. Skipped when PAYMENT_WEBHOOK_SECRET is not configured."""
    if not PAYMENT_WEBHOOK_SECRET:
        return
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret.encode(), PAYMENT_WEBHOOK_SECRET.encode()):
        raise HTTPException(401, "Invalid webhook secret")


# ─── Webhook ─────────────────────────────────────────────────────────────────

@router.post("/webhook", response_model=PaymentResult, dependencies=[Depends(verify_secret)])
async def payment_webhook(event: PaymentEvent, store: SessionStore = Depends(store_dep)):
    if event.type not in COMPLETED_EVENTS:
        logger.info(f"Payment event ignored: {event.type}")
        return PaymentResult(status="ignored")

    phone = event.phone()
    if not phone:
        logger.error(f"Payment event {event.type} without a phone reference")
        return PaymentResult(status="no_reference")

    record = await store.grant_premium(phone, event.days(), provider=PAYMENT_PROVIDER_NAME)
    return PaymentResult(
        status="premium_granted",
        phone=phone,
        premium_until=record.premium_until.isoformat() if record.premium_until else None,
    )
