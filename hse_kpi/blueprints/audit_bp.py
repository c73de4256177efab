"""
HSE KPI Tracker
Change log blueprint.

Endpoints:
    GET  /api/v1/audit               — list / filter change records
    GET  /api/v1/audit/<change_id>   — single change record
    GET  /api/v1/audit/export        — CSV download of the (filtered) change log
"""

from datetime import date

from flask import Blueprint, Response, jsonify, request

from hse_kpi.blueprints import API_PREFIX, register_error_handlers
from hse_kpi.models import db
from hse_kpi.models.audit import CHANGE_ENTITIES, CHANGE_FIELDS, ChangeSet
from hse_kpi.services.export_service import generate_change_log_csv
from hse_kpi.utils.errors import E, api_error

audit_bp = Blueprint("audit", __name__, url_prefix=API_PREFIX)
register_error_handlers(audit_bp)


# ── List / filter ────────────────────────────────────────────────────────────

@audit_bp.route("/audit", methods=["GET"])
def list_changes():
    """
    Return paginated change records, newest first.

    Query params:
        entity       — filter by entity (kpi_value, kpi, ...)
        entity_id    — filter by entity PK
        field        — filter by change kind (kpi_create, kpi_update, ...)
        changed_by   — filter by acting user
        page         — page number (default 1)
        per_page     — items per page (default 50, max 200)
    """
    entity = request.args.get("entity")
    if entity and entity not in CHANGE_ENTITIES:
        return api_error(
            E.VALIDATION_INVALID,
            f"Unknown entity '{entity}'",
            details={"entity": sorted(CHANGE_ENTITIES)},
        )
    field = request.args.get("field")
    if field and field not in CHANGE_FIELDS:
        return api_error(
            E.VALIDATION_INVALID,
            f"Unknown field '{field}'",
            details={"field": sorted(CHANGE_FIELDS)},
        )

    q = ChangeSet.query

    # ── Filters ──────────────────────────────────────────────────────────
    for arg in ("entity", "entity_id", "field", "changed_by"):
        value = request.args.get(arg)
        if value:
            q = q.filter(getattr(ChangeSet, arg) == value)

    # ── Ordering ─────────────────────────────────────────────────────────
    q = q.order_by(ChangeSet.changed_at.desc(), ChangeSet.id)

    # ── Pagination ───────────────────────────────────────────────────────
    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(200, max(1, request.args.get("per_page", 50, type=int)))

    paginated = q.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        "changes": [c.to_dict() for c in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "per_page": paginated.per_page,
        "pages": paginated.pages,
    })


# ── CSV export ───────────────────────────────────────────────────────────────

@audit_bp.route("/audit/export", methods=["GET"])
def export_changes():
    content = generate_change_log_csv(
        entity=request.args.get("entity") or None,
        changed_by=request.args.get("changed_by") or None,
    )
    filename = f"HSE_Change_Log_{date.today().isoformat()}.csv"
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ── Single entry ─────────────────────────────────────────────────────────────

@audit_bp.route("/audit/<change_id>", methods=["GET"])
def get_change(change_id):
    change = db.session.get(ChangeSet, change_id)
    if not change:
        return api_error(E.NOT_FOUND, "Change record not found")
    return jsonify(change.to_dict())
