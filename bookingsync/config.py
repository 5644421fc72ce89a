import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _get_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from None


def _get_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./bookingsync.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Shared secret for the admin API (X-Admin-Key header). Admin routes are closed when unset.
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

# Scheduling
# One time zone per deployment; business hours are interpreted in it
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Asia/Tokyo")
# Tenant used by single-tenant widget embeds that do not pass a clientId
DEFAULT_CLIENT_ID = os.getenv("DEFAULT_CLIENT_ID", "default")
# Legacy widget behaviour: one-hour buckets aligned on the hour regardless of slot interval
LEGACY_HOURLY_BUCKETS = _get_bool("LEGACY_HOURLY_BUCKETS", "false")
# "pending" or "confirmed"
DEFAULT_RESERVATION_STATUS = os.getenv("DEFAULT_RESERVATION_STATUS", "pending")
RESERVATION_DURATION_MINUTES = _get_int("RESERVATION_DURATION_MINUTES", "60")

# Google Calendar OAuth Configuration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", "http://localhost:5173/auth/google-calendar")
CALENDAR_API_TIMEOUT = _get_int("CALENDAR_API_TIMEOUT", "10")
TOKEN_REFRESH_MARGIN_MINUTES = _get_int("TOKEN_REFRESH_MARGIN_MINUTES", "5")

# Resend Email Configuration (fallback)
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Reservations <noreply@example.com>")

# Custom SMTP (preferred over Resend when SMTP_HOST is set)
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = _get_int("SMTP_PORT", "587")
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_USE_TLS = _get_bool("SMTP_USE_TLS", "true")
MAIL_SEND_TIMEOUT = _get_int("MAIL_SEND_TIMEOUT", "30")

# Notification scheduler
EMAIL_SWEEP_INTERVAL_SECONDS = _get_int("EMAIL_SWEEP_INTERVAL_SECONDS", "60")
# 0 keeps retrying failed emails forever
EMAIL_RETRY_MAX_ATTEMPTS = _get_int("EMAIL_RETRY_MAX_ATTEMPTS", "0")
# A schedule stuck in "sending" longer than this is considered abandoned and reclaimed
EMAIL_CLAIM_TIMEOUT_MINUTES = _get_int("EMAIL_CLAIM_TIMEOUT_MINUTES", "15")

# ARQ worker
REDIS_URL = os.getenv("REDIS_URL")
ARQ_MAX_JOBS = _get_int("ARQ_MAX_JOBS", "10")
ARQ_JOB_TIMEOUT = _get_int("ARQ_JOB_TIMEOUT", "300")
