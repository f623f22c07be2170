"""
Jovika Kito v2.0 — ORM Models
One durable row per student phone. The row mirrors StudentRecord field for field
so upserts can always write the full set.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Integer, Text, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


# ─── Helpers ─────────────────────────────────────────────────────────────────

def _now() -> datetime:
    return datetime.now(timezone.utc)


# ─── Students ────────────────────────────────────────────────────────────────

class Student(Base):
    __tablename__ = "students"

    # Gateway phone identity, e.g. "351912345678"
    phone: Mapped[str] = mapped_column(String(32), primary_key=True)

    # Onboarding
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    target_language: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)  # "en" | "fr"
    level: Mapped[str] = mapped_column(String(5), default="A0")
    stage: Mapped[str] = mapped_column(String(20), default="ask_name")
    chat_mode: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Lesson position
    lesson_index: Mapped[int] = mapped_column(Integer, default=0)
    part_index: Mapped[int] = mapped_column(Integer, default=0)
    awaiting_expected_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    awaiting_set_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Entitlement
    plan: Mapped[str] = mapped_column(String(10), default="free")  # "free" | "premium"
    premium_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_provider: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    last_sales_message_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_premium_expired_notice_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Activity
    messages_count: Mapped[int] = mapped_column(Integer, default=0)
    history: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)  # [{"role", "content"}]
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    last_message_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)
