"""
HSE Monitoring Plan export endpoint.

    GET /api/v1/export/monitoring-plan
        year: int (optional, default HSE_REPORT_YEAR)
        contractor_name: str (optional, default HSE_CONTRACTOR_NAME)
        contract_holder: str (optional, default HSE_CONTRACT_HOLDER)

No temp files; the workbook is built in memory and streamed back. Any
failure yields a 500 and no partial download.
"""

import logging

from flask import Blueprint, Response, request

from hse_kpi.blueprints import API_PREFIX, int_arg
from hse_kpi.services.export_service import (
    XLSX_MIMETYPE,
    generate_monitoring_plan_xlsx,
    monitoring_plan_filename,
)
from hse_kpi.utils.errors import E, api_error

logger = logging.getLogger(__name__)

export_bp = Blueprint("export", __name__, url_prefix=API_PREFIX)


@export_bp.route("/export/monitoring-plan", methods=["GET"])
def export_monitoring_plan():
    """Download the HSE Monitoring Plan as .xlsx.

    Returns:
        Binary file download with Content-Disposition
        ``HSE_Monitoring_Plan_<YYYY-MM-DD>.xlsx``.
    """
    year = int_arg("year")
    try:
        content = generate_monitoring_plan_xlsx(
            year=year,
            contractor_name=request.args.get("contractor_name") or None,
            contract_holder=request.args.get("contract_holder") or None,
        )
    except Exception:
        logger.exception("Monitoring plan export failed year=%s", year)
        return api_error(E.EXPORT_FAILED, "Export failed. Please try again.")

    filename = monitoring_plan_filename()
    return Response(
        content,
        mimetype=XLSX_MIMETYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
