"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database check plus catalog counts
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from hse_kpi.models import db
from hse_kpi.models.catalog import Kpi, KpiPeriod

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


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
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Catalog ──────────────────────────────────────────────────────
    if overall:
        year = current_app.config.get("HSE_REPORT_YEAR")
        periods = KpiPeriod.query.filter_by(year=year, period_type="monthly").count()
        checks["catalog"] = {
            "report_year": year,
            "periods": periods,
            "active_kpis": Kpi.query.filter_by(is_active=True).count(),
            "status": "ok" if periods else "periods_not_seeded",
        }

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "HSE KPI Tracker",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
