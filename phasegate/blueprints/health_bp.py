"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready   simple 200 for load balancers
    GET /api/v1/health/live    database round trip and window table status
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from phasegate.core.clock import utcnow
from phasegate.models import db
from phasegate.models.window import PhaseWindow

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe: always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": exc.__class__.__name__}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    if overall:
        try:
            count = db.session.execute(select(func.count(PhaseWindow.id))).scalar()
            checks["phase_windows"] = {"status": "ok", "count": count}
        except SQLAlchemyError as exc:
            db.session.rollback()
            checks["phase_windows"] = {"status": "error", "detail": exc.__class__.__name__}
            overall = False
            logger.error("Health check: phase_windows unreadable: %s", exc)

    checks["clock"] = {"now": utcnow().isoformat()}
    checks["app"] = {
        "name": "Phase Window Engine",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
