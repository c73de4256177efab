"""
Catalog blueprint — reporting periods, sections and KPI definitions.

Blueprint: catalog
Prefix: /api/v1

Endpoints:
    GET        /periods                -- ?year=&period_type=&include_inactive=
    POST       /periods/seed           -- {year} → create the 12 monthly periods
    GET/POST   /sections
    GET/POST   /kpis                   -- ?section_id=&include_inactive=
    GET/PUT    /kpis/<kpi_id>

Services flush; this layer commits.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from hse_kpi.blueprints import API_PREFIX, actor, int_arg, register_error_handlers
from hse_kpi.models import db
from hse_kpi.services import catalog_service
from hse_kpi.utils.errors import E, api_error

logger = logging.getLogger(__name__)

catalog_bp = Blueprint("catalog", __name__, url_prefix=API_PREFIX)
register_error_handlers(catalog_bp)


def _truthy(name) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes")


# ── Periods ──────────────────────────────────────────────────────────────


@catalog_bp.route("/periods", methods=["GET"])
def list_periods():
    periods = catalog_service.list_periods(
        year=int_arg("year"),
        period_type=request.args.get("period_type", "monthly") or None,
        active_only=not _truthy("include_inactive"),
    )
    return jsonify({"items": [p.to_dict() for p in periods], "total": len(periods)}), 200


@catalog_bp.route("/periods/seed", methods=["POST"])
def seed_periods():
    """Create the monthly periods of a year. Existing months are left alone."""
    data = request.get_json(silent=True) or {}
    year = data.get("year", current_app.config["HSE_REPORT_YEAR"])
    if isinstance(year, str) and year.isdigit():
        year = int(year)

    created = catalog_service.seed_monthly_periods(year)
    db.session.commit()
    return jsonify({"year": year, "created": created}), 201 if created else 200


# ── Sections ─────────────────────────────────────────────────────────────


@catalog_bp.route("/sections", methods=["GET"])
def list_sections():
    sections = catalog_service.list_sections(active_only=not _truthy("include_inactive"))
    return jsonify({"items": [s.to_dict() for s in sections], "total": len(sections)}), 200


@catalog_bp.route("/sections", methods=["POST"])
def create_section():
    data = request.get_json(silent=True) or {}
    if not data.get("name") or not data.get("code"):
        return api_error(E.VALIDATION_REQUIRED, "name and code are required")

    section = catalog_service.create_section(data, changed_by=actor())
    db.session.commit()
    logger.info("Section created id=%s code=%s", section.id, section.code)
    return jsonify(section.to_dict()), 201


# ── KPIs ─────────────────────────────────────────────────────────────────


@catalog_bp.route("/kpis", methods=["GET"])
def list_kpis():
    kpis = catalog_service.list_kpis(
        section_id=request.args.get("section_id") or None,
        include_inactive=_truthy("include_inactive"),
    )
    return jsonify({"items": [k.to_dict() for k in kpis], "total": len(kpis)}), 200


@catalog_bp.route("/kpis", methods=["POST"])
def create_kpi():
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("section_id", "code", "name") if not data.get(f)]
    if missing:
        return api_error(
            E.VALIDATION_REQUIRED,
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )

    kpi = catalog_service.create_kpi(data, changed_by=actor())
    db.session.commit()
    logger.info("KPI created id=%s code=%s", kpi.id, kpi.code)
    return jsonify(kpi.to_dict()), 201


@catalog_bp.route("/kpis/<kpi_id>", methods=["GET"])
def get_kpi(kpi_id):
    return jsonify(catalog_service.get_kpi(kpi_id).to_dict()), 200


@catalog_bp.route("/kpis/<kpi_id>", methods=["PUT"])
def update_kpi(kpi_id):
    """Partial update; send ``{"is_active": false}`` to retire a KPI."""
    kpi = catalog_service.get_kpi(kpi_id)
    data = request.get_json(silent=True) or {}
    catalog_service.update_kpi(kpi, data, changed_by=actor())
    db.session.commit()
    return jsonify(kpi.to_dict()), 200
