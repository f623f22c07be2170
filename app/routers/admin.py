"""
Jovika Kito v2.0 — Admin Router
Manual entitlement control plus usage stats (JSON and an HTML dashboard).

Every route checks ADMIN_TOKEN (header X-Admin-Token or ?token=) before any
record is read. No ADMIN_TOKEN configured means every request is rejected.
"""

import hmac
import html
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from app.config import ADMIN_TOKEN, PREMIUM_DEFAULT_DAYS
from app.state.entitlement import entitlement_status, is_premium
from app.state.session import StudentRecord, normalize_phone
from app.state.store import SessionStore, get_session_store

logger = logging.getLogger("kito.admin")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ─── Auth ────────────────────────────────────────────────────────────────────

def require_admin(
    x_admin_token: Optional[str] = Header(default=None),
    token: Optional[str] = Query(default=None),
) -> None:
    supplied = x_admin_token or token
    if not ADMIN_TOKEN or not supplied or not hmac.compare_digest(supplied.encode(), ADMIN_TOKEN.encode()):
        logger.warning("Admin request with invalid token")
        raise HTTPException(401, "Unauthorized")


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def store_dep() -> SessionStore:
    return get_session_store()


# ─── Response Models ─────────────────────────────────────────────────────────

class PremiumStatus(BaseModel):
    phone: str
    plan: str
    status: str                 # premium | expired | free
    premium_until: Optional[str] = None
    payment_provider: Optional[str] = None


class StudentSummary(BaseModel):
    phone: str
    name: Optional[str] = None
    target_language: Optional[str] = None
    level: str
    stage: str
    messages_count: int
    lesson_index: int
    part_index: int
    entitlement: str
    created_at: Optional[str] = None
    last_message_at: Optional[str] = None


class StatsResponse(BaseModel):
    total: int
    by_language: dict
    by_stage: dict
    premium_active: int
    active_24h: int
    persist_failures: int
    read_failures: int
    students: list[StudentSummary]


def _premium_status(record: StudentRecord, now: datetime) -> PremiumStatus:
    return PremiumStatus(
        phone=record.phone,
        plan=record.plan.value,
        status=entitlement_status(record, now),
        premium_until=_iso(record.premium_until),
        payment_provider=record.payment_provider,
    )


def _phone_or_400(phone: str) -> str:
    normalized = normalize_phone(phone)
    if not normalized:
        raise HTTPException(400, "Invalid phone")
    return normalized


# ─── Entitlement ─────────────────────────────────────────────────────────────

@router.post("/students/{phone}/premium", response_model=PremiumStatus)
async def grant_premium(
    phone: str,
    days: int = Query(default=PREMIUM_DEFAULT_DAYS),
    store: SessionStore = Depends(store_dep),
):
    phone = _phone_or_400(phone)
    if days <= 0:
        raise HTTPException(400, "days must be positive")
    record = await store.grant_premium(phone, days, provider="admin")
    logger.info(f"Admin granted {days} days of premium to {phone}")
    return _premium_status(record, datetime.now(timezone.utc))


@router.delete("/students/{phone}/premium", response_model=PremiumStatus)
async def revoke_premium(phone: str, store: SessionStore = Depends(store_dep)):
    phone = _phone_or_400(phone)
    record = await store.revoke_premium(phone)
    if record is None:
        raise HTTPException(404, "Student not found")
    logger.info(f"Admin revoked premium for {phone}")
    return _premium_status(record, datetime.now(timezone.utc))


@router.get("/students/{phone}/premium", response_model=PremiumStatus)
async def premium_status(phone: str, store: SessionStore = Depends(store_dep)):
    phone = _phone_or_400(phone)
    record = await store.load(phone)
    if record is None:
        raise HTTPException(404, "Student not found")
    return _premium_status(record, datetime.now(timezone.utc))


# ─── Stats ───────────────────────────────────────────────────────────────────

async def _build_stats(store: SessionStore, now: datetime) -> StatsResponse:
    records = sorted(await store.all_records(), key=lambda r: r.last_message_at, reverse=True)

    by_language: dict[str, int] = {}
    by_stage: dict[str, int] = {}
    for r in records:
        language = r.target_language or "none"
        by_language[language] = by_language.get(language, 0) + 1
        by_stage[r.stage.value] = by_stage.get(r.stage.value, 0) + 1

    return StatsResponse(
        total=len(records),
        by_language=by_language,
        by_stage=by_stage,
        premium_active=sum(1 for r in records if is_premium(r, now)),
        active_24h=sum(1 for r in records if now - r.last_message_at <= timedelta(hours=24)),
        persist_failures=store.persist_failures,
        read_failures=store.read_failures,
        students=[
            StudentSummary(
                phone=r.phone,
                name=r.name,
                target_language=r.target_language,
                level=r.level,
                stage=r.stage.value,
                messages_count=r.messages_count,
                lesson_index=r.lesson_index,
                part_index=r.part_index,
                entitlement=entitlement_status(r, now),
                created_at=_iso(r.created_at),
                last_message_at=_iso(r.last_message_at),
            )
            for r in records
        ],
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(store: SessionStore = Depends(store_dep)):
    return await _build_stats(store, datetime.now(timezone.utc))


# ─── Dashboard ───────────────────────────────────────────────────────────────

_DASHBOARD_STYLE = """
    body { font-family: system-ui, sans-serif; background: #0f172a; color: #e5e7eb; padding: 24px; }
    .cards { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 16px; }
    .card { background: #111827; border-radius: 12px; padding: 16px; }
    .card-title { color: #9ca3af; font-size: 13px; }
    .card-value { font-size: 26px; font-weight: 600; margin-top: 6px; }
    table { width: 100%; border-collapse: collapse; margin-top: 24px; font-size: 14px; }
    th, td { padding: 8px; border-bottom: 1px solid #1f2937; text-align: left; }
    th { color: #9ca3af; }
"""


def _cell(value) -> str:
    return f"<td>{html.escape(str(value)) if value not in (None, '') else '-'}</td>"


def render_dashboard(report: StatsResponse) -> str:
    """The stats report as a standalone HTML page. Every student value is escaped."""
    languages = " · ".join(f"{html.escape(k)}: {v}" for k, v in sorted(report.by_language.items())) or "-"
    rows = "\n".join(
        "<tr>" + "".join(_cell(v) for v in (
            s.name, s.phone, s.target_language, s.level, s.stage,
            f"{s.lesson_index + 1}.{s.part_index + 1}", s.messages_count,
            s.entitlement, s.last_message_at,
        )) + "</tr>"
        for s in report.students
    )
    cards = [
        ("Total de alunos", report.total),
        ("Ativos nas últimas 24h", report.active_24h),
        ("Premium ativos", report.premium_active),
        ("Idiomas", languages),
        ("Mensagens totais", sum(s.messages_count for s in report.students)),
    ]
    card_html = "\n".join(
        f'<div class="card"><div class="card-title">{title}</div><div class="card-value">{value}</div></div>'
        for title, value in cards
    )
    return f"""<!DOCTYPE html>
<html lang="pt">
<head>
  <meta charset="UTF-8" />
  <title>Dashboard - Jovika Academy (Professor Kito)</title>
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <style>{_DASHBOARD_STYLE}</style>
</head>
<body>
  <h1>Professor Kito</h1>
  <div class="cards">
{card_html}
  </div>
  <table>
    <thead>
      <tr><th>Nome</th><th>Número</th><th>Idioma</th><th>Nível</th><th>Stage</th><th>Lição</th><th>Msgs</th><th>Plano</th><th>Última mensagem</th></tr>
    </thead>
    <tbody>
{rows}
    </tbody>
  </table>
</body>
</html>
"""


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(store: SessionStore = Depends(store_dep)):
    report = await _build_stats(store, datetime.now(timezone.utc))
    return HTMLResponse(render_dashboard(report))
