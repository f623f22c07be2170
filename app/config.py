"""
Jovika Kito v2.0 — Configuration
All environment variables and constants. Single source of truth.
No other file reads os.environ directly.
"""

import os
from pathlib import Path

# Load .env file if present
_env_path = Path(__file__).resolve().parent.parent / ".env"
if _env_path.exists():
    with open(_env_path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, _, value = line.partition("=")
                os.environ.setdefault(key.strip(), value.strip())

# ─── Paths ───────────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# ─── API Keys ────────────────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# ─── Provider Selection (swap by changing these) ─────────────────────────────
TRANSPORT_PROVIDER = os.getenv("TRANSPORT_PROVIDER", "zapi")
# Options: zapi | mock
TTS_PROVIDER = os.getenv("TTS_PROVIDER", "openai")
# Options: openai | mock
STT_PROVIDER = os.getenv("STT_PROVIDER", "openai")
# Options: openai | mock
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai")
# Options: openai

# ─── Database ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite:///{BASE_DIR / 'kito.db'}"
)
# Render/Railway hand out "postgres://" URLs; SQLAlchemy wants "postgresql://"
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# ─── Z-API (WhatsApp gateway) ────────────────────────────────────────────────
ZAPI_INSTANCE_ID = os.getenv("ZAPI_INSTANCE_ID", "")
ZAPI_INSTANCE_TOKEN = os.getenv("ZAPI_INSTANCE_TOKEN", "")
ZAPI_CLIENT_TOKEN = os.getenv("ZAPI_CLIENT_TOKEN", "")
ZAPI_BASE_URL = os.getenv("ZAPI_BASE_URL", "https://api.z-api.io")

# ─── Outbound HTTP ───────────────────────────────────────────────────────────
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))

# ─── LLM Settings ────────────────────────────────────────────────────────────
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4.1-mini")
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "400"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.6"))
LLM_HISTORY_WINDOW = 10  # Last N history entries sent to the model

# ─── TTS / STT Settings ──────────────────────────────────────────────────────
TTS_MODEL = os.getenv("TTS_MODEL", "gpt-4o-mini-tts")
TTS_VOICE = os.getenv("TTS_VOICE", "alloy")
TTS_MAX_CHARS = 500
STT_MODEL = os.getenv("STT_MODEL", "gpt-4o-mini-transcribe")
STT_LANGUAGE = os.getenv("STT_LANGUAGE", "pt")
AUDIO_CACHE_DIR = Path(os.getenv("AUDIO_CACHE_DIR", str(BASE_DIR / "audio_cache")))

# ─── Admin / Payments ────────────────────────────────────────────────────────
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET", "")
PAYMENT_PROVIDER_NAME = os.getenv("PAYMENT_PROVIDER_NAME", "stripe")
PREMIUM_DEFAULT_DAYS = int(os.getenv("PREMIUM_DEFAULT_DAYS", "30"))
CHECKOUT_URL = os.getenv("CHECKOUT_URL", "https://jovika.academy/premium")

# ─── Paywall ─────────────────────────────────────────────────────────────────
HARD_PAYWALL = os.getenv("HARD_PAYWALL", "true").lower() == "true"
SALES_NOTICE_COOLDOWN_HOURS = float(os.getenv("SALES_NOTICE_COOLDOWN_HOURS", "72"))
PREMIUM_EXPIRED_NOTICE_COOLDOWN_HOURS = float(
    os.getenv("PREMIUM_EXPIRED_NOTICE_COOLDOWN_HOURS", "24")
)

# ─── Session Settings ────────────────────────────────────────────────────────
DEDUPE_MAX_IDS = int(os.getenv("DEDUPE_MAX_IDS", "5000"))
HISTORY_MAX_TURNS = int(os.getenv("HISTORY_MAX_TURNS", "20"))
AUDIO_REQUIRE_EXPLICIT_TEXT = os.getenv("AUDIO_REQUIRE_EXPLICIT_TEXT", "false").lower() == "true"
DEFAULT_STUDENT_NAME = "Aluno"

# ─── Lesson Scoring ──────────────────────────────────────────────────────────
SIMILARITY_PASS_THRESHOLD = 0.35
PREFIX_BONUS = 0.15
PREFIX_BONUS_CHARS = 6

# ─── Supported Languages ─────────────────────────────────────────────────────
SUPPORTED_LANGUAGES = {
    "en": "inglês",
    "fr": "francês",
}

# ─── Logging ─────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
