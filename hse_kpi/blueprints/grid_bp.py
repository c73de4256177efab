"""
Grid blueprint — dense KPI × period matrix and per-cell operation status.

Endpoints:
    GET /api/v1/grid               -- ?year=&period_type=&section_id=
    GET /api/v1/grid/cell-status   -- non-idle cells from the operation tracker
"""

from flask import Blueprint, jsonify, request

from hse_kpi.blueprints import API_PREFIX, int_arg, register_error_handlers
from hse_kpi.services.cell_ops import cell_tracker
from hse_kpi.services.grid_service import build_grid

grid_bp = Blueprint("grid", __name__, url_prefix=API_PREFIX)
register_error_handlers(grid_bp)


@grid_bp.route("/grid", methods=["GET"])
def get_grid():
    grid = build_grid(
        year=int_arg("year"),
        period_type=request.args.get("period_type", "monthly"),
        section_id=request.args.get("section_id") or None,
    )
    return jsonify(grid), 200


@grid_bp.route("/grid/cell-status", methods=["GET"])
def get_cell_status():
    items = cell_tracker.snapshot()
    return jsonify({"items": items, "total": len(items)}), 200
