"""
Tests for the grid projection and cell display values.

Covers:
  - every (active KPI, period) pair yields exactly one cell
  - absent cells are synthesised as not_started / version 0
  - grouping by section order, empty sections dropped, orphan KPIs last
  - two builds without writes are equal
  - grid vs export display precedence
"""

from types import SimpleNamespace

from hse_kpi.models import db
from hse_kpi.services import catalog_service
from hse_kpi.services.cell_display import export_display_value, grid_display_value
from hse_kpi.services.grid_service import build_grid, group_kpis_by_section
from hse_kpi.services.kpi_value_service import upsert_value


def _section(code, name, order_idx):
    section = catalog_service.create_section({"code": code, "name": name, "order_idx": order_idx})
    db.session.commit()
    return section


def _kpi(section, code, **extra):
    kpi = catalog_service.create_kpi(
        {"section_id": section.id, "code": code, "name": f"KPI {code}", **extra},
    )
    db.session.commit()
    return kpi


# ── Densification ───────────────────────────────────────────────────────


def test_grid_is_dense(periods_2025, safety_kpi, safety_section):
    _kpi(safety_section, "1.2")
    upsert_value(safety_kpi.id, periods_2025[0].id, {"status": "done"})

    grid = build_grid(year=2025)

    assert grid["kpi_count"] == 2
    assert grid["stored_cell_count"] == 1
    for block in grid["sections"]:
        for row in block["rows"]:
            assert [c["period_id"] for c in row["cells"]] == [p.id for p in periods_2025]


def test_absent_cell_is_not_started(periods_2025, safety_kpi):
    grid = build_grid(year=2025)
    cell = grid["sections"][0]["rows"][0]["cells"][5]

    assert cell["exists"] is False
    assert cell["status"] == "not_started"
    assert cell["numeric_value"] is None
    assert cell["text_value"] is None
    assert cell["version"] == 0
    assert cell["display_value"] == ""


def test_stored_cell_is_copied(periods_2025, safety_kpi):
    upsert_value(safety_kpi.id, periods_2025[2].id, {"status": "done", "text_value": "3"})

    cell = build_grid(year=2025)["sections"][0]["rows"][0]["cells"][2]

    assert cell["exists"] is True
    assert cell["status"] == "done"
    assert cell["numeric_value"] == 3.0
    assert cell["version"] == 1
    assert cell["display_value"] == "3"
    assert cell["export_value"] == 3


def test_inactive_kpis_are_excluded(periods_2025, safety_kpi, safety_section):
    retired = _kpi(safety_section, "1.2")
    catalog_service.update_kpi(retired, {"is_active": False})
    db.session.commit()

    rows = build_grid(year=2025)["sections"][0]["rows"]
    assert [r["kpi"]["code"] for r in rows] == ["1.1"]


def test_grid_build_is_idempotent(periods_2025, safety_kpi):
    upsert_value(safety_kpi.id, periods_2025[0].id, {"status": "blocked"})

    assert build_grid(year=2025) == build_grid(year=2025)


def test_grid_without_periods_has_empty_rows(safety_kpi):
    grid = build_grid(year=2030)
    assert grid["periods"] == []
    assert grid["sections"][0]["rows"][0]["cells"] == []


# ── Grouping ────────────────────────────────────────────────────────────


def test_sections_in_order_and_empty_sections_dropped(periods_2025):
    env = _section("ENV", "Environment", 3)
    lead = _section("LEAD", "Leadership", 1)
    _section("EMPTY", "No KPIs here", 2)
    _kpi(env, "3.1")
    _kpi(lead, "1.2")
    _kpi(lead, "1.1")

    grid = build_grid(year=2025)

    assert [b["section"]["code"] for b in grid["sections"]] == ["LEAD", "ENV"]
    assert [r["kpi"]["code"] for r in grid["sections"][0]["rows"]] == ["1.1", "1.2"]


def test_section_filter(periods_2025, safety_kpi):
    env = _section("ENV", "Environment", 3)
    _kpi(env, "3.1")

    grid = build_grid(year=2025, section_id=env.id)
    assert [b["section"]["code"] for b in grid["sections"]] == ["ENV"]
    assert grid["kpi_count"] == 1


def test_orphan_kpis_grouped_under_unknown_section():
    known = SimpleNamespace(id="s1", to_dict=lambda: {"id": "s1", "name": "Safety"})
    kpis = [
        SimpleNamespace(id="k1", section_id="s1"),
        SimpleNamespace(id="k2", section_id="gone"),
    ]

    groups = group_kpis_by_section([known], kpis)

    assert [g[0]["name"] for g in groups] == ["Safety", "Unknown Section"]
    assert [k.id for k in groups[1][1]] == ["k2"]


# ── Display precedence ──────────────────────────────────────────────────


def test_grid_display_prefers_text():
    cell = {"status": "done", "text_value": "Three", "numeric_value": 3.0}
    assert grid_display_value(cell) == "Three"
    assert grid_display_value({"status": "done", "text_value": None, "numeric_value": 2.5}) == "2.5"


def test_export_display_prefers_number_then_status():
    assert export_display_value({"status": "done", "text_value": "Three", "numeric_value": 3.0}) == 3
    assert export_display_value({"status": "blocked", "text_value": "waiting"}) == "blocked"
    assert export_display_value({"status": None, "text_value": "waiting"}) == "waiting"
    assert export_display_value(None) == ""
