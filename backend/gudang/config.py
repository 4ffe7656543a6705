# backend/gudang/config.py
from __future__ import annotations
import os


def _csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/gudang.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///gudang.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer key for the programmatic endpoints (handle-approval, send-approval-email, /api/*)
    SERVICE_API_KEY = os.environ.get("SERVICE_API_KEY")

    # Base URL used to build the approve/reject links embedded in emails
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")

    # Transactional email provider (Resend-compatible HTTP API)
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    RESEND_API_URL = os.environ.get("RESEND_API_URL", "https://api.resend.com/emails")
    MAIL_FROM = os.environ.get("MAIL_FROM", "Gudang Pintar <onboarding@resend.dev>")
    APPROVAL_CC_EMAILS = _csv(os.environ.get("APPROVAL_CC_EMAILS"))

    APPROVAL_TOKEN_TTL_HOURS = int(os.environ.get("APPROVAL_TOKEN_TTL_HOURS", "24"))
    NOTIFIER_TIMEOUT_SECONDS = float(os.environ.get("NOTIFIER_TIMEOUT_SECONDS", "5"))

    # Browser origins allowed to call the JSON API (admin UI dev servers by default)
    CORS_ORIGINS = _csv(os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    ))
