# backend/pettycash/routes/system.py
"""
System health endpoint.

Reports database connectivity and the outbound dispatcher counters, which is
enough to tell a stuck mail/audit side channel from a dead database.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from pettycash.time_utils import to_utc_z, utcnow

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
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    dispatcher = current_app.extensions.get("outbound")
    outbound = {
        "mode": current_app.config.get("OUTBOUND_MODE"),
        "dispatched": getattr(dispatcher, "dispatched", 0),
        "failed": getattr(dispatcher, "failed", 0),
    }
    healthy = database["status"] == "healthy"
    return jsonify({
        "success": healthy,
        "data": {
            "status": "ok" if healthy else "degraded",
            "timestamp": to_utc_z(utcnow()),
            "database": database,
            "outbound": outbound,
        },
    }), 200 if healthy else 503
