"""
KPI value blueprint — read and upsert a single grid cell.

Blueprint: kpi_value
Prefix: /api/v1

Endpoints:
    GET  /kpi-values/<kpi_id>/<period_id>   -- stored value, 404 when the cell is empty
    PUT  /kpi-values/<kpi_id>/<period_id>   -- upsert (partial patch)

PUT body:
    {
        "status": "done",            # optional
        "text_value": "3",           # optional, numeric text also sets numeric_value
        "numeric_value": 3,          # optional
        "evidence_url": "...",       # optional
        "expected_version": 2        # optional compare-and-swap guard
    }

The acting user is read from ``X-User-Id``. Every write is reflected in the
cell operation tracker (saving → succeeded / failed).
"""

import logging

from flask import Blueprint, jsonify, request

from hse_kpi.blueprints import API_PREFIX, actor, register_error_handlers
from hse_kpi.services import kpi_value_service
from hse_kpi.services.catalog_service import get_kpi, get_period
from hse_kpi.services.cell_ops import cell_tracker
from hse_kpi.utils.errors import E, api_error

logger = logging.getLogger(__name__)

kpi_value_bp = Blueprint("kpi_value", __name__, url_prefix=API_PREFIX)
register_error_handlers(kpi_value_bp)


@kpi_value_bp.route("/kpi-values/<kpi_id>/<period_id>", methods=["GET"])
def get_kpi_value(kpi_id, period_id):
    get_kpi(kpi_id)
    get_period(period_id)
    value = kpi_value_service.get_value(kpi_id, period_id)
    if value is None:
        return api_error(E.NOT_FOUND, "No value recorded for this KPI and period")
    return jsonify(value.to_dict()), 200


@kpi_value_bp.route("/kpi-values/<kpi_id>/<period_id>", methods=["PUT"])
def upsert_kpi_value(kpi_id, period_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "JSON object body required")

    patch = {k: data[k] for k in kpi_value_service.PATCH_FIELDS if k in data}
    if not patch:
        return api_error(
            E.VALIDATION_REQUIRED,
            "At least one of status, text_value, numeric_value, evidence_url is required",
        )

    expected_version = data.get("expected_version")
    if expected_version is not None and (
        isinstance(expected_version, bool) or not isinstance(expected_version, int)
    ):
        return api_error(E.VALIDATION_INVALID, "expected_version must be an integer")

    # Only existing cells are tracked.
    get_kpi(kpi_id)
    get_period(period_id)

    cell_tracker.mark_saving(kpi_id, period_id)
    try:
        value = kpi_value_service.upsert_value(
            kpi_id,
            period_id,
            patch,
            changed_by=actor(),
            expected_version=expected_version,
            source_page=data.get("source_page") or "/grid",
        )
    except Exception as exc:
        cell_tracker.mark_failed(kpi_id, period_id, exc)
        raise
    cell_tracker.mark_succeeded(kpi_id, period_id)

    return jsonify(value.to_dict()), 200
