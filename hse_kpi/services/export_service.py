"""
HSE Monitoring Plan export (.xlsx) and change-log export (.csv).

The monitoring plan re-projects the same catalog × value join as the grid,
independently of it, into the fixed template layout:

    rows 1-3   title, contractor name, contract holder (column C)
    row 4      column headers: #, Actions, ACTION OWNER, Action Party,
               Target/Frequency, Jan-YY … Dec-YY, Measurement
    then       per section: a label row, then one row per active KPI
    then       a blank row and the fixed "10 HSE KPI" summary block

Month columns are chosen by the calendar month of the value's period
start date, whatever its year or period id. Several values landing on the
same month overwrite each other in scan order (oldest update first), so
the most recently updated one is written.

Exports are built in memory and returned as bytes; any failure propagates
and no partial document is produced.
"""

import calendar
import csv
import io
import logging
from datetime import date

from flask import current_app
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from hse_kpi.models.audit import ChangeSet
from hse_kpi.services.catalog_service import load_catalogs
from hse_kpi.services.cell_display import export_display_value
from hse_kpi.services.grid_service import group_kpis_by_section
from hse_kpi.services.kpi_value_service import list_values

logger = logging.getLogger(__name__)

SHEET_TITLE = "HSE Monitoring Plan"
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER_ROW_COUNT = 3
COLUMN_HEADER_ROW = HEADER_ROW_COUNT + 1   # 1-indexed worksheet row
FIRST_MONTH_COL = 5                        # 0-indexed position of Jan
ROW_WIDTH = 18

COLUMN_WIDTHS = [5, 60, 20, 15, 20] + [10] * 12 + [25]

SUMMARY_ROWS = [
    ("10.1", "Lost time Injury - LTI (Number)", "Zero", "Zero"),
    ("10.2", "Total Recordable Cases - TRC (Number)", "Zero", "Zero"),
    ("10.3", "Motor Vehicle Incidents - MVI (Number)", "Zero", "Zero"),
    ("10.4", "Road Safety LSR Violations - Frequency per 1 Million Km Driven", "Zero", "Zero"),
    ("10.5", "Fatality", "Zero", "Zero"),
    ("10.6", "SIF (Serious Injury and Fatality)", "Zero", "Zero"),
    ("10.7", "NM reporting (serves as a leading indicator to strengthen the reporting culture)",
     "5", "12"),
    ("10.9", "Environmental Incidents", "Zero", "Zero"),
    ("10.10", "NCR Closeout Status (%)", "100%", "100%"),
    ("10.11", "HSE Monitoring Plan Compliance (%)", "100%", "100%"),
]

HEADER_FILL = PatternFill(start_color="E6E6FA", end_color="E6E6FA", fill_type="solid")
SECTION_FILL = PatternFill(start_color="F2F2F2", end_color="F2F2F2", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


def _pad(values) -> list:
    row = list(values)
    return row + [""] * (ROW_WIDTH - len(row))


def month_labels(year: int) -> list[str]:
    """``["Jan-25", …, "Dec-25"]`` for 2025."""
    return [f"{calendar.month_abbr[m]}-{year % 100:02d}" for m in range(1, 13)]


def column_headers(year: int) -> list[str]:
    return [
        "#", "Actions", "ACTION OWNER", "Action Party", "Target/Frequency",
        *month_labels(year),
        "Measurement",
    ]


def summary_block(year: int) -> list[list]:
    """Blank spacer, block header and the ten fixed summary KPI rows."""
    header = _pad([
        "10", "HSE KPI - add as necessary in agreement with CH",
        f"{year - 1} Actual", f"{year} Target", "",
        "Contractor", "Contractor", "Name", "Name",
        "Sign", "Sign", "Sign", "Sign", "Date", "Date",
    ])
    return [_pad([]), header] + [_pad(item) for item in SUMMARY_ROWS]


def monthly_cells(values, periods_by_id) -> list:
    """Fold a KPI's values into its 12 month columns (last one wins)."""
    cells = [""] * 12
    for value in values:
        period = periods_by_id.get(value.period_id)
        if period is None or period.start_date is None:
            continue
        cells[period.start_date.month - 1] = export_display_value(value)
    return cells


def project_monitoring_plan(sections, kpis, periods, values, *, year,
                            contractor_name, contract_holder) -> list[list]:
    """Pure projection of catalog + values into template rows."""
    periods_by_id = {p.id: p for p in periods}
    values_by_kpi: dict[str, list] = {}
    for value in values:
        values_by_kpi.setdefault(value.kpi_id, []).append(value)

    rows = [
        _pad(["", "", f"{year} HSE Monitoring Plan"]),
        _pad(["", "", f"Contractor Name: {contractor_name}"]),
        _pad(["", "", f"PDO Contract Holder: {contract_holder}"]),
        column_headers(year),
    ]

    for number, (section, members) in enumerate(group_kpis_by_section(sections, kpis), start=1):
        rows.append(_pad([str(number), section["name"]]))
        for kpi in members:
            rows.append([
                kpi.code or "",
                kpi.name or "",
                kpi.owner_user_id or "",
                "",
                kpi.target_formula or "",
                *monthly_cells(values_by_kpi.get(kpi.id, []), periods_by_id),
                kpi.unit or "",
            ])

    rows.extend(summary_block(year))
    return rows


def build_monitoring_plan_rows(year=None, contractor_name=None, contract_holder=None):
    """Load catalogs and values, then project them into template rows."""
    cfg = current_app.config
    year = year or cfg.get("HSE_REPORT_YEAR")
    contractor_name = contractor_name or cfg.get("HSE_CONTRACTOR_NAME", "")
    contract_holder = contract_holder or cfg.get("HSE_CONTRACT_HOLDER", "")

    # Every period of every year: months are matched by calendar month only
    catalogs = load_catalogs(year=None, period_type=None, periods_active_only=False)
    active_sections = [s for s in catalogs.sections if s.is_active]
    values = list_values(kpi_ids=[k.id for k in catalogs.kpis])

    return project_monitoring_plan(
        active_sections, catalogs.kpis, catalogs.periods, values,
        year=year,
        contractor_name=contractor_name,
        contract_holder=contract_holder,
    )


def monitoring_plan_filename(today: date | None = None) -> str:
    today = today or date.today()
    return f"HSE_Monitoring_Plan_{today.isoformat()}.xlsx"


def generate_monitoring_plan_xlsx(year=None, contractor_name=None, contract_holder=None) -> bytes:
    """Generate the HSE Monitoring Plan workbook.

    Returns:
        bytes: Raw .xlsx file content ready to stream to the client.
    """
    rows = build_monitoring_plan_rows(year, contractor_name, contract_holder)
    section_row_count = 0

    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    summary_start = len(rows) - len(SUMMARY_ROWS)   # 1-indexed block header row
    for row_idx, row in enumerate(rows, start=1):
        for col_idx, value in enumerate(row, start=1):
            if value == "":
                continue
            ws.cell(row=row_idx, column=col_idx, value=value)

        if row_idx == 1:
            ws.cell(row=1, column=3).font = Font(size=14, bold=True)
        elif row_idx == COLUMN_HEADER_ROW or row_idx == summary_start:
            for col_idx in range(1, ROW_WIDTH + 1):
                cell = ws.cell(row=row_idx, column=col_idx)
                cell.font = Font(bold=True)
                cell.fill = HEADER_FILL
                cell.border = THIN_BORDER
                cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        # Section label rows are numbered "1", "2", …; KPI codes are not bare integers
        elif COLUMN_HEADER_ROW < row_idx < summary_start - 1 and str(row[0]).isdigit():
            section_row_count += 1
            for col_idx in range(1, ROW_WIDTH + 1):
                cell = ws.cell(row=row_idx, column=col_idx)
                cell.font = Font(bold=True)
                cell.fill = SECTION_FILL

    for col_idx, width in enumerate(COLUMN_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = width
    ws.freeze_panes = ws.cell(row=COLUMN_HEADER_ROW + 1, column=FIRST_MONTH_COL + 1)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Monitoring plan exported: %d rows, %d sections", len(rows), section_row_count)
    return buf.getvalue()


def generate_change_log_csv(entity=None, changed_by=None) -> str:
    """CSV dump of the change log, newest first.

    Returns:
        str: CSV content as a UTF-8 string.
    """
    q = ChangeSet.query
    if entity:
        q = q.filter(ChangeSet.entity == entity)
    if changed_by:
        q = q.filter(ChangeSet.changed_by == changed_by)
    entries = q.order_by(ChangeSet.changed_at.desc(), ChangeSet.id).all()

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow([
        "changed_at", "entity", "entity_id", "field", "changed_by",
        "reason", "source_page", "old_value", "new_value",
    ])
    for e in entries:
        writer.writerow([
            e.changed_at.isoformat() if e.changed_at else "",
            e.entity,
            e.entity_id,
            e.field,
            e.changed_by,
            (e.reason or "").replace("\n", " "),
            e.source_page or "",
            e.old_value or "",
            e.new_value or "",
        ])
    return buf.getvalue()
