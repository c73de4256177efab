"""
Grid projection — dense KPI × period matrix grouped by section.

Every (KPI, period) pair yields a cell: stored values are copied, missing
ones are synthesised as ``not_started`` with no numeric/text value. The
projection is a pure full recomputation on every call (no caching, no
writes), so two calls without intervening writes return equal results.
"""

import logging

from flask import current_app

from hse_kpi.models.kpi_value import DEFAULT_STATUS
from hse_kpi.services.catalog_service import load_catalogs
from hse_kpi.services.cell_display import export_display_value, grid_display_value
from hse_kpi.services.kpi_value_service import list_values

logger = logging.getLogger(__name__)

UNKNOWN_SECTION = {
    "id": None,
    "name": "Unknown Section",
    "code": "UNK",
    "description": "",
    "order_idx": 999,
    "is_active": False,
}


def index_values(values) -> dict:
    """Map (kpi_id, period_id) → KpiValue. Later rows overwrite earlier ones."""
    return {(v.kpi_id, v.period_id): v for v in values}


def empty_cell(kpi_id, period_id) -> dict:
    """Virtual cell for a pair that has no stored value yet."""
    cell = {
        "kpi_id": kpi_id,
        "period_id": period_id,
        "value_id": None,
        "exists": False,
        "status": DEFAULT_STATUS,
        "numeric_value": None,
        "text_value": None,
        "evidence_url": None,
        "attachment_count": 0,
        "version": 0,
        "updated_at": None,
    }
    cell["display_value"] = grid_display_value(cell)
    cell["export_value"] = export_display_value(cell)
    return cell


def cell_from_value(value) -> dict:
    cell = {
        "kpi_id": value.kpi_id,
        "period_id": value.period_id,
        "value_id": value.id,
        "exists": True,
        "status": value.status,
        "numeric_value": value.numeric_value,
        "text_value": value.text_value,
        "evidence_url": value.evidence_url,
        "attachment_count": value.attachment_count or 0,
        "version": value.version,
        "updated_at": value.updated_at.isoformat() if value.updated_at else None,
    }
    cell["display_value"] = grid_display_value(cell)
    cell["export_value"] = export_display_value(cell)
    return cell


def group_kpis_by_section(sections, kpis) -> list[tuple[dict, list]]:
    """Group KPIs under their section, in section order then the KPIs' own order.

    Sections without KPIs are dropped. KPIs pointing at an unknown section
    are collected into a trailing "Unknown Section" group.
    """
    by_section: dict[str, list] = {}
    for kpi in kpis:
        by_section.setdefault(kpi.section_id, []).append(kpi)

    groups = []
    known = set()
    for section in sections:
        known.add(section.id)
        members = by_section.get(section.id)
        if members:
            groups.append((section.to_dict(), members))

    orphans = [k for k in kpis if k.section_id not in known]
    if orphans:
        groups.append((dict(UNKNOWN_SECTION), orphans))
    return groups


def build_grid(year=None, period_type="monthly", section_id=None) -> dict:
    """Assemble the grid for one year of periods.

    Args:
        year: Reporting year; defaults to ``HSE_REPORT_YEAR``.
        period_type: monthly | quarterly | yearly.
        section_id: Restrict KPIs (and the value scan) to one section.

    Returns:
        ``{"year", "period_type", "periods", "sections": [{"section", "rows":
        [{"kpi", "cells"}]}], "kpi_count", "stored_cell_count"}``; each row
        has exactly one cell per period, in period order.
    """
    if year is None:
        year = current_app.config.get("HSE_REPORT_YEAR")

    catalogs = load_catalogs(year=year, period_type=period_type, section_id=section_id)
    values = list_values(period_ids=catalogs.period_ids, section_id=section_id)
    index = index_values(values)

    section_blocks = []
    kpi_count = 0
    stored_count = 0
    for section, kpis in group_kpis_by_section(catalogs.sections, catalogs.kpis):
        rows = []
        for kpi in kpis:
            cells = []
            for period in catalogs.periods:
                stored = index.get((kpi.id, period.id))
                if stored:
                    stored_count += 1
                cells.append(cell_from_value(stored) if stored else empty_cell(kpi.id, period.id))
            rows.append({"kpi": kpi.to_dict(), "cells": cells})
        kpi_count += len(rows)
        section_blocks.append({"section": section, "rows": rows})

    logger.debug(
        "Grid built year=%s type=%s kpis=%d periods=%d stored=%d",
        year, period_type, kpi_count, len(catalogs.periods), stored_count,
    )
    return {
        "year": year,
        "period_type": period_type,
        "periods": [p.to_dict() for p in catalogs.periods],
        "sections": section_blocks,
        "kpi_count": kpi_count,
        "stored_cell_count": stored_count,
    }
