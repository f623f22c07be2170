"""
Jovika Kito v2.0 — Main Application
FastAPI app. Mounts the Z-API webhook, payments and admin routers.
Database initialization and collaborator wiring on startup.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import LOG_LEVEL, HARD_PAYWALL
from app.database import init_db

logger = logging.getLogger("kito")


# ─── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: logging, DB tables, collaborators. Shutdown: nothing to clean."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    logger.info("Initializing database...")
    init_db()

    # Build the collaborators now so missing credentials are logged once at boot
    from app.tutor.orchestrator import get_orchestrator
    from app.voice.stt import get_stt

    orchestrator = get_orchestrator()
    get_stt()
    logger.info(
        f"Transport={type(orchestrator.transport).__name__} "
        f"TTS={type(orchestrator.tts).__name__ if orchestrator.tts else 'disabled'} "
        f"LLM={type(orchestrator.llm).__name__ if orchestrator.llm else 'disabled'} "
        f"hard_paywall={HARD_PAYWALL}"
    )

    logger.info("Kito v2.0.0 ready")
    yield
    logger.info("Shutting down")


# ─── App ─────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Kito v2.0",
    description="WhatsApp language tutor for Jovika Academy",
    version="2.0.0",
    lifespan=lifespan,
)

# Mount routers
from app.routers import admin, payments, webhook
app.include_router(webhook.router)
app.include_router(payments.router)
app.include_router(admin.router)


@app.get("/")
async def root():
    return {"service": "kito", "status": "ok"}


# Health check (both /health and /healthz for Railway)
@app.get("/health")
@app.get("/healthz")
async def health():
    return {"status": "ok", "version": "2.0.0"}


# Keep-alive endpoint for UptimeRobot (prevents Railway sleep)
@app.get("/ping")
async def ping():
    return {"status": "awake"}
