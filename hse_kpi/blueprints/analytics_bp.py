"""
Analytics blueprint.

Endpoints:
    GET /api/v1/analytics   -- ?year=&period_id=&section_id=
"""

from flask import Blueprint, jsonify, request

from hse_kpi.blueprints import API_PREFIX, int_arg, register_error_handlers
from hse_kpi.services.analytics_service import compute_analytics

analytics_bp = Blueprint("analytics", __name__, url_prefix=API_PREFIX)
register_error_handlers(analytics_bp)


@analytics_bp.route("/analytics", methods=["GET"])
def get_analytics():
    """Completion percentages overall, per section and per period."""
    result = compute_analytics(
        year=int_arg("year"),
        period_id=request.args.get("period_id") or None,
        section_id=request.args.get("section_id") or None,
    )
    return jsonify(result), 200
