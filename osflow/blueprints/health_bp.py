"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — dependency status (DB, scheduler, channels)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from osflow.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness check: 200 whenever the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    # ── Scheduler ────────────────────────────────────────────────────
    scheduler = current_app.extensions.get("scheduler")
    thread = getattr(scheduler, "_thread", None)
    checks["scheduler"] = {
        "enabled": bool(current_app.config.get("SCHEDULER_ENABLED")),
        "running": bool(thread is not None and thread.is_alive()),
        "interval_seconds": current_app.config.get("SLA_SWEEP_INTERVAL_SECONDS"),
    }

    # ── Notification channels (configured / log-only) ───────────────
    checks["channels"] = {
        "slack": "configured" if current_app.config.get("SLACK_WEBHOOK_URL") else "log_only",
        "whatsapp": (
            "configured"
            if current_app.config.get("WHATSAPP_API_URL") and current_app.config.get("WHATSAPP_API_TOKEN")
            else "log_only"
        ),
    }

    checks["app"] = {
        "name": "Content OS Workflow Platform",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
