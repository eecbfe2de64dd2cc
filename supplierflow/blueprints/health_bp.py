"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — simple 200 for load balancers
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — detailed system health (DB, document store, registry)
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify

from supplierflow.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
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
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error"}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Document store ───────────────────────────────────────────────
    store = current_app.extensions.get("document_store")
    root = getattr(store, "root", None)
    if root and os.path.isdir(root) and os.access(root, os.W_OK):
        checks["document_store"] = {"status": "ok"}
    else:
        checks["document_store"] = {"status": "error"}
        overall = False

    # ── Company registry (optional, never fails overall health) ─────
    registry = current_app.extensions.get("company_registry")
    checks["company_registry"] = {
        "status": "configured" if registry is not None and registry.configured else "not_configured",
    }

    checks["app"] = {
        "name": "Supplier Onboarding Workflow",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
