"""
Health check blueprint.

Endpoints:
    GET /api/v1/health   database round-trip and scheduler state
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ispops.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    """200 when the database answers, 503 otherwise."""
    checks = {}
    overall = True

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

    scheduler = current_app.extensions.get("org_cron_scheduler")
    checks["scheduler"] = {
        "enabled": bool(current_app.config.get("CRON_SCHEDULER_ENABLED")),
        "scheduled_organizations": len(scheduler.active_jobs()) if scheduler else 0,
    }

    status = "ok" if overall else "degraded"
    return jsonify({"status": status, "checks": checks}), 200 if overall else 503
