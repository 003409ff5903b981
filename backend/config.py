from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

TRUTHY_ENV_VALUES = {"1", "true", "yes", "on"}
logger = logging.getLogger("resumeai.config")


def env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in TRUTHY_ENV_VALUES


def env_text(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def clamp_int_env(name: str, default: int, lower: int, upper: int) -> int:
    raw = env_text(name)
    try:
        value = int(raw) if raw else default
    except ValueError:
        logger.warning("%s is not an integer (%r). Using %s.", name, raw, default)
        value = default
    return max(lower, min(upper, value))


DEFAULT_CORS_ORIGINS = [
    "https://resumeai.app",
    "https://www.resumeai.app",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


def parse_cors_origins(value: str | None) -> list[str]:
    if not value:
        return DEFAULT_CORS_ORIGINS
    origins = [origin.strip() for origin in value.split(",") if origin.strip()]
    return origins or DEFAULT_CORS_ORIGINS


def normalize_database_url(value: str | None) -> str:
    raw = (value or "").strip()
    if raw.startswith("postgres://"):
        return "postgresql://" + raw[len("postgres://") :]
    return raw


def resolve_usage_db_path() -> str:
    explicit = env_text("USAGE_DB_PATH")
    if explicit:
        return explicit
    if os.path.isdir("/var/data"):
        return "/var/data/resumeai_usage.db"
    return os.path.join(os.path.dirname(__file__), "data", "resumeai_usage.db")


CORS_ALLOW_ORIGINS = parse_cors_origins(os.getenv("CORS_ALLOW_ORIGINS"))
SITE_URL = env_text("SITE_URL", "https://resumeai.app").rstrip("/")

OPENAI_API_KEY = env_text("OPENAI_API_KEY")
OPENAI_MODEL = env_text("OPENAI_MODEL", "gpt-4o-mini")

SUPABASE_URL = env_text("SUPABASE_URL").rstrip("/")
SUPABASE_ANON_KEY = env_text("SUPABASE_ANON_KEY")
SUPABASE_SERVICE_ROLE_KEY = env_text("SUPABASE_SERVICE_ROLE_KEY")
SUPABASE_TIMEOUT_SECONDS = clamp_int_env("SUPABASE_TIMEOUT_SECONDS", 8, 2, 30)

DATABASE_URL = normalize_database_url(os.getenv("DATABASE_URL"))
USAGE_DB_BACKEND = "postgres" if DATABASE_URL.startswith("postgresql://") else "sqlite"
USAGE_DB_PATH = resolve_usage_db_path()

RATE_LIMIT_SALT = env_text("RATE_LIMIT_SALT", "resumeai-rate-limit")

RAPIDAPI_KEY = env_text("RAPIDAPI_KEY")
RAPIDAPI_HOST = env_text("RAPIDAPI_HOST", "jsearch.p.rapidapi.com")
JOB_SEARCH_TIMEOUT_SECONDS = clamp_int_env("JOB_SEARCH_TIMEOUT_SECONDS", 15, 5, 30)

STRIPE_SECRET_KEY = env_text("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = env_text("STRIPE_WEBHOOK_SECRET")
STRIPE_PRICE_IDS: dict[str, str] = {
    "pro": env_text("STRIPE_PRICE_PRO"),
    "max": env_text("STRIPE_PRICE_MAX"),
}

RESEND_API_KEY = env_text("RESEND_API_KEY")
EMAIL_FROM = env_text("EMAIL_FROM", "ResumeAI <alerts@resumeai.app>")
INBOX_DOMAIN = env_text("INBOX_DOMAIN", "inbox.resumeai.app")
EMAIL_HTTP_TIMEOUT_SECONDS = clamp_int_env("EMAIL_HTTP_TIMEOUT_SECONDS", 12, 5, 30)

if not OPENAI_API_KEY:
    logger.warning("OPENAI_API_KEY is missing. AI features will answer with a configuration error.")
if not (SUPABASE_URL and SUPABASE_ANON_KEY):
    logger.warning("SUPABASE_URL/SUPABASE_ANON_KEY are missing. Every caller will be treated as the free tier.")
if RATE_LIMIT_SALT == "resumeai-rate-limit":
    logger.warning("RATE_LIMIT_SALT is using a default value. Set RATE_LIMIT_SALT in production.")
if USAGE_DB_BACKEND == "sqlite" and USAGE_DB_PATH.startswith("/tmp/"):
    logger.warning("USAGE_DB_PATH is using temporary storage (%s). Daily quotas reset on restart.", USAGE_DB_PATH)
