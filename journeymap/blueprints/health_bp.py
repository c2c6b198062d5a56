"""
Health check blueprint.

Endpoints:
    GET /api/v1/health          liveness, always 200 while the app runs
    GET /api/v1/health/ready    storage readiness (snapshot loadable, DB reachable)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from journeymap.core.exceptions import PersistenceError
from journeymap.models import db
from journeymap.services.workspace_engine import get_engine

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def live():
    """Simple liveness probe."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness with storage backend status."""
    checks = {}
    overall = True
    backend = current_app.config.get("STORAGE_BACKEND")

    # ── Database ─────────────────────────────────────────────────────
    if backend == "database":
        try:
            t0 = time.perf_counter()
            db.session.execute(db.text("SELECT 1"))
            db_ms = (time.perf_counter() - t0) * 1000
            checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
        except SQLAlchemyError as exc:
            checks["database"] = {"status": "error", "detail": str(exc)}
            overall = False
            logger.error("Health check: database failed: %s", exc)
    else:
        checks["database"] = {"status": "skipped", "detail": f"backend is {backend}"}

    # ── Workspace snapshot ───────────────────────────────────────────
    engine = get_engine()
    try:
        graph = engine.graph
        checks["workspace"] = {
            "status": "ok",
            "clients": len(graph.clients),
            "saveError": engine.save_error,
        }
    except PersistenceError as exc:
        checks["workspace"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: workspace load failed: %s", exc)

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "backend": backend,
        "checks": checks,
    }), status_code
