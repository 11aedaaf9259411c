"""
Health check blueprint.

Endpoints:
    GET /api/v1/health       — simple 200 for load balancers
    GET /api/v1/health/live  — database round-trip + workflow engine status
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from admissions.models import db
from admissions.services.workflow_service import EXTENSION_KEY

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def ready():
    """Readiness probe — always 200 if the app is running."""
    return jsonify({"status": "ok", "app": "Admissions Workflow Service"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
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
        logger.error("Health check — database failed: %s", exc)

    workflow = current_app.extensions.get(EXTENSION_KEY)
    if workflow is None:
        checks["workflow"] = {"status": "error", "detail": "engine not registered"}
        overall = False
    else:
        checks["workflow"] = {
            "status": "ok",
            "stage_templates": len(workflow.get_stage_templates()),
            "row_locking": workflow.lock_stage_rows,
        }

    status_code = 200 if overall else 503
    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), status_code
