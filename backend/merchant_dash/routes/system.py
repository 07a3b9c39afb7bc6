# Overview: Flask API routes for health checks.

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..decorators import get_runtime
from ..extensions import db


system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "latency_ms": round((time.time() - start_time) * 1000, 2)}
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


def check_runtime_health() -> dict:
    runtime = get_runtime()
    return {
        "status": "healthy",
        "loop_running": runtime.running,
        "open_sessions": len(runtime.open_sessions),
        "feed_subscribers": runtime.remote.hub.subscriber_count,
    }


@system_bp.get("/health")
def health():
    database = check_database_health()
    body = {
        "status": database["status"],
        "checks": {"database": database, "runtime": check_runtime_health()},
    }
    return jsonify(body), 200 if database["status"] == "healthy" else 503
