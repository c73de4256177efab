"""
Analytics over the KPI grid.

Completion is measured per KPI as the share of periods whose status is
``done`` (or 100/0 when a single period is selected), then averaged across
KPIs. Missing cells count as ``not_started``; ``needs_review`` is reported in
the not-started bucket.

Outputs:
    - overall percentages per status bucket
    - section_stats (ordered by section order_idx)
    - period_comparison (done KPIs per period)
    - top_performers (≥ 70 %) / needs_attention (< 40 %), three each
"""

import logging

from flask import current_app

from hse_kpi.core.exceptions import NotFoundError
from hse_kpi.models.kpi_value import DEFAULT_STATUS
from hse_kpi.services.catalog_service import load_catalogs
from hse_kpi.services.grid_service import group_kpis_by_section, index_values
from hse_kpi.services.kpi_value_service import list_values

logger = logging.getLogger(__name__)

TOP_PERFORMER_THRESHOLD = 70.0
NEEDS_ATTENTION_THRESHOLD = 40.0
HIGHLIGHT_LIMIT = 3

_BUCKETS = ("done", "in_progress", "blocked", "not_started")


def _bucket(status):
    return status if status in ("done", "in_progress", "blocked") else "not_started"


def _pct(part, whole):
    return (part / whole) * 100 if whole else 0.0


def kpi_status_shares(kpi_id, periods, index, period_id=None) -> dict:
    """Percentage of periods in each status bucket for one KPI."""
    if period_id is not None:
        value = index.get((kpi_id, period_id))
        status = value.status if value else DEFAULT_STATUS
        return {b: (100.0 if _bucket(status) == b else 0.0) for b in _BUCKETS}

    counts = dict.fromkeys(_BUCKETS, 0)
    for period in periods:
        value = index.get((kpi_id, period.id))
        counts[_bucket(value.status if value else DEFAULT_STATUS)] += 1
    total_periods = len(periods) or 12
    return {b: _pct(counts[b], total_periods) for b in _BUCKETS}


def compute_analytics(year=None, period_id=None, section_id=None) -> dict:
    """Build the analytics dashboard payload.

    Args:
        year: Reporting year (defaults to ``HSE_REPORT_YEAR``).
        period_id: Restrict completion to a single period.
        section_id: Restrict KPIs to one section.

    Raises:
        NotFoundError: ``period_id`` is not one of the year's periods.
    """
    if year is None:
        year = current_app.config.get("HSE_REPORT_YEAR")

    catalogs = load_catalogs(year=year, period_type="monthly", section_id=section_id)
    if period_id is not None and period_id not in catalogs.period_ids:
        raise NotFoundError(resource="KpiPeriod", resource_id=period_id)

    index = index_values(list_values(period_ids=catalogs.period_ids, section_id=section_id))
    kpis = catalogs.kpis

    shares = {
        kpi.id: kpi_status_shares(kpi.id, catalogs.periods, index, period_id)
        for kpi in kpis
    }
    totals = dict.fromkeys(_BUCKETS, 0.0)
    for kpi_share in shares.values():
        for b in _BUCKETS:
            totals[b] += kpi_share[b]
    n = len(kpis)

    section_stats = []
    for section, members in group_kpis_by_section(catalogs.sections, kpis):
        if section["id"] is None:
            continue
        completion = sum(shares[k.id]["done"] for k in members) / len(members)
        section_stats.append({
            "section_id": section["id"],
            "section_name": section["name"],
            "section_number": section["order_idx"],
            "total": len(members),
            "completed": round(len(members) * completion / 100),
            "completion_percentage": completion,
        })

    period_comparison = []
    for period in catalogs.periods:
        completed = sum(
            1 for kpi in kpis
            if (v := index.get((kpi.id, period.id))) is not None and v.status == "done"
        )
        period_comparison.append({
            "period_id": period.id,
            "month": period.label,
            "total": n,
            "completed": completed,
            "completion_percentage": round(_pct(completed, n), 1),
        })

    top_performers = sorted(
        (s for s in section_stats if s["completion_percentage"] >= TOP_PERFORMER_THRESHOLD),
        key=lambda s: -s["completion_percentage"],
    )[:HIGHLIGHT_LIMIT]
    needs_attention = sorted(
        (s for s in section_stats if s["completion_percentage"] < NEEDS_ATTENTION_THRESHOLD),
        key=lambda s: s["completion_percentage"],
    )[:HIGHLIGHT_LIMIT]

    logger.debug("Analytics computed year=%s kpis=%d sections=%d", year, n, len(section_stats))
    return {
        "year": year,
        "period_id": period_id,
        "section_id": section_id,
        "total_kpis": n,
        "completion_percentage": round(totals["done"] / n, 1) if n else 0.0,
        "in_progress_percentage": round(totals["in_progress"] / n, 1) if n else 0.0,
        "blocked_percentage": round(totals["blocked"] / n, 1) if n else 0.0,
        "not_started_percentage": round(totals["not_started"] / n, 1) if n else 0.0,
        "section_stats": [
            dict(s, completion_percentage=round(s["completion_percentage"], 1))
            for s in section_stats
        ],
        "period_comparison": period_comparison,
        "top_performers": [
            {"section": s["section_name"], "percentage": round(s["completion_percentage"], 1)}
            for s in top_performers
        ],
        "needs_attention": [
            {"section": s["section_name"], "percentage": round(s["completion_percentage"], 1)}
            for s in needs_attention
        ],
    }
