"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        - simple 200 for load balancers
    GET /api/v1/health/live   - database check plus registered jobs
"""

import logging
import time

from flask import Blueprint, jsonify

from workplan.models import db
from workplan.services.scheduler_service import get_registered_jobs

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def ready():
    """Readiness check: always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with database latency."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    checks["scheduler"] = {"status": "ok", "jobs": sorted(get_registered_jobs())}

    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), (
        200 if overall else 503)
