# backend/gudang/routes/system.py
"""
System health endpoint.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db, get_email_sender

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def check_email_health() -> dict:
    # Email is best-effort; an unconfigured provider degrades, never fails, health
    configured = bool(getattr(get_email_sender(), "configured", True))
    return {"status": "healthy" if configured else "degraded", "configured": configured}


@system_bp.get("/health")
def health():
    checks = {
        "database": check_database_health(),
        "email": check_email_health(),
    }
    healthy = checks["database"]["status"] == "healthy"
    return jsonify({"status": "ok" if healthy else "error", "checks": checks}), 200 if healthy else 503
