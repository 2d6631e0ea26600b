"""
Application configuration from environment variables.

All settings have sensible defaults for local development.
A .env file in the project root is loaded automatically (if present).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file before reading any env vars
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ── Environment ───────────────────────────────────────────────────────────

ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info")
APP_VERSION: str = "0.1.0"

# ── Paths ─────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

# SQLite database file (OTPs, sessions, contact submissions)
DB_PATH: str = os.getenv("DB_PATH", str(DATA_DIR / "storefront.db"))

# Upper bound for a single store round trip.
STORE_TIMEOUT_SECONDS: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))

# ── Sessions ──────────────────────────────────────────────────────────────

SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "digiinsta_session")
SESSION_LIFETIME_MS: int = int(os.getenv("SESSION_LIFETIME_MS", str(24 * 60 * 60 * 1000)))

# How often the browser is expected to call /api/auth/refresh-session.
SESSION_REFRESH_INTERVAL_SECONDS: int = int(
    os.getenv("SESSION_REFRESH_INTERVAL_SECONDS", "300")
)

# Page prefixes that require a valid session cookie.
PROTECTED_PREFIXES: tuple[str, ...] = ("/dashboard", "/creators", "/upload")
LOGIN_PATH: str = "/login"
AFTER_LOGIN_PATH: str = "/dashboard"

# Shared secret for scheduled maintenance calls (cleanup-sessions).
# Empty means the endpoint is not guarded, which is only sane locally.
CRON_SECRET: str = os.getenv("CRON_SECRET", "")

# ── OTP ───────────────────────────────────────────────────────────────────

OTP_LENGTH: int = 6
OTP_TTL_SECONDS: int = int(os.getenv("OTP_TTL_SECONDS", "600"))

# Comma-separated allow-list of back-office emails. Empty allows everyone.
ADMIN_EMAILS: frozenset[str] = frozenset(
    e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()
)

# ── Rate limiting ─────────────────────────────────────────────────────────

# Redis URL for the shared rate-limit store. Empty disables throttling
# (every check fails open).
REDIS_URL: str = os.getenv("REDIS_URL", "")
RATE_LIMIT_TIMEOUT_SECONDS: float = float(os.getenv("RATE_LIMIT_TIMEOUT_SECONDS", "1"))

# ── SMTP ──────────────────────────────────────────────────────────────────

SMTP_HOST: str = os.getenv("SMTP_HOST", "")
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL: str = os.getenv("SMTP_FROM_EMAIL", "noreply@digiinsta.store")
SMTP_USE_TLS: bool = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
EMAIL_TIMEOUT_SECONDS: float = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))

# Set to "false" to force console-only mode even when SMTP credentials are present.
_SMTP_ENABLED_OVERRIDE: str = os.getenv("SMTP_ENABLED", "auto")


def smtp_enabled() -> bool:
    """True when SMTP should actually send emails.

    Controlled by SMTP_ENABLED env var:
      • "auto" (default): send if credentials are configured
      • "true" : always send (will fail if credentials are missing)
      • "false": never send, log to console instead
    """
    if _SMTP_ENABLED_OVERRIDE.lower() == "false":
        return False
    if _SMTP_ENABLED_OVERRIDE.lower() == "true":
        return True
    return bool(SMTP_HOST and SMTP_USERNAME and SMTP_PASSWORD)


def is_production() -> bool:
    return ENVIRONMENT == "production"
