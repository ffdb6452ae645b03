# backend/pettycash/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str = "") -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pettycash.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pettycash.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # 500 responses carry the exception text only when this is on
    EXPOSE_ERROR_DETAILS = _env_bool("EXPOSE_ERROR_DETAILS", False)

    # Goods and services tax, in basis points (1800 = 18%)
    GST_RATE_BPS = int(os.environ.get("GST_RATE_BPS", "1800"))

    # Credential gateway
    OTP_TTL_MINUTES = int(os.environ.get("OTP_TTL_MINUTES", "10"))
    OTP_COOLDOWN_SECONDS = int(os.environ.get("OTP_COOLDOWN_SECONDS", "60"))
    OTP_MAX_ATTEMPTS = int(os.environ.get("OTP_MAX_ATTEMPTS", "5"))
    ACCOUNT_LOCK_MINUTES = int(os.environ.get("ACCOUNT_LOCK_MINUTES", "15"))
    PASSWORD_NOTIFY_THRESHOLD = int(os.environ.get("PASSWORD_NOTIFY_THRESHOLD", "3"))

    # Outbound side channel: "thread" dispatches on a worker pool, "inline" runs handlers immediately
    OUTBOUND_MODE = os.environ.get("OUTBOUND_MODE", "thread")
    OUTBOUND_WORKERS = int(os.environ.get("OUTBOUND_WORKERS", "2"))

    # Mail: "smtp", "console" or "memory"
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "console")
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_SENDER = os.environ.get("MAIL_SENDER", "Petty Cash <noreply@pettycash.local>")
    MAIL_TIMEOUT = float(os.environ.get("MAIL_TIMEOUT", "10"))
    ADMIN_ALERT_EMAILS = _env_list("ADMIN_ALERT_EMAILS")

    # Uploads
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")
    MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))

    # Fields an employee may change when answering an info request
    RESUBMIT_EDITABLE_FIELDS = _env_list(
        "RESUBMIT_EDITABLE_FIELDS",
        "description,vendor_name,notes",
    )
