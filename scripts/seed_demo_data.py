#!/usr/bin/env python3
"""
HSE KPI Tracker — demo seed.

Creates the monthly periods of the reporting year, a handful of HSE
monitoring-plan sections with their KPIs, and (optionally) a few recorded
values so the grid, analytics and export have something to show.

Usage:
    python scripts/seed_demo_data.py                 # catalog + sample values
    python scripts/seed_demo_data.py --year 2026     # other reporting year
    python scripts/seed_demo_data.py --no-values     # catalog only

Safe to re-run: existing sections, KPIs and periods are reused.
"""

import argparse
import sys

sys.path.insert(0, ".")

from hse_kpi import create_app
from hse_kpi.models import db
from hse_kpi.models.catalog import Kpi, Section
from hse_kpi.services import catalog_service, kpi_value_service


DEMO_CATALOG = [
    ("LEAD", "Leadership & Commitment", [
        ("1.1", "HSE leadership site visits", "Site Manager", "1 / month", "Visits"),
        ("1.2", "HSE committee meetings held", "Project Manager", "1 / month", "Meetings"),
    ]),
    ("SAFE", "Safety", [
        ("2.1", "Toolbox talks conducted", "HSE Supervisor", "4 / month", "Talks"),
        ("2.2", "Safety inspections completed", "HSE Officer", "2 / month", "Inspections"),
        ("2.3", "Near miss reports submitted", "All staff", "5 / month", "Reports"),
    ]),
    ("HLTH", "Occupational Health", [
        ("3.1", "Medical fitness certificates valid (%)", "Camp Boss", "100%", "%"),
        ("3.2", "Welfare facility inspections", "HSE Officer", "1 / month", "Inspections"),
    ]),
    ("ENV", "Environment", [
        ("4.1", "Waste segregation audits", "HSE Officer", "1 / month", "Audits"),
        ("4.2", "Spill kits checked", "Supervisor", "1 / month", "Checks"),
    ]),
    ("DRIVE", "Road Safety", [
        ("5.1", "IVMS reports reviewed", "Transport Supervisor", "1 / week", "Reports"),
        ("5.2", "Defensive driving refresher sessions", "Transport Supervisor", "1 / quarter",
         "Sessions"),
    ]),
]

# (kpi code, month, patch)
DEMO_VALUES = [
    ("1.1", 1, {"status": "done", "text_value": "1"}),
    ("1.1", 2, {"status": "done", "text_value": "2"}),
    ("1.1", 3, {"status": "in_progress", "text_value": "Scheduled"}),
    ("2.1", 1, {"status": "done", "numeric_value": 4}),
    ("2.1", 2, {"status": "done", "numeric_value": 5}),
    ("2.3", 1, {"status": "needs_review", "text_value": "3"}),
    ("3.1", 1, {"status": "done", "text_value": "100"}),
    ("4.2", 2, {"status": "blocked", "text_value": "Kits on order"}),
]


def seed_catalog():
    """Create sections and KPIs that do not exist yet. Returns {code: Kpi}."""
    kpis = {}
    for order_idx, (code, name, items) in enumerate(DEMO_CATALOG, start=1):
        section = Section.query.filter_by(code=code).first()
        if section is None:
            section = catalog_service.create_section(
                {"code": code, "name": name, "order_idx": order_idx},
            )
        for kpi_code, kpi_name, owner, target, unit in items:
            kpi = Kpi.query.filter_by(section_id=section.id, code=kpi_code).first()
            if kpi is None:
                kpi = catalog_service.create_kpi({
                    "section_id": section.id,
                    "code": kpi_code,
                    "name": kpi_name,
                    "owner_user_id": owner,
                    "target_formula": target,
                    "unit": unit,
                })
            kpis[kpi_code] = kpi
    db.session.commit()
    print(f"  ✓ {len(DEMO_CATALOG)} sections, {len(kpis)} KPIs")
    return kpis


def seed_values(kpis, year):
    periods = {p.month: p for p in catalog_service.list_periods(year=year)}
    written = 0
    for kpi_code, month, patch in DEMO_VALUES:
        kpi_value_service.upsert_value(
            kpis[kpi_code].id, periods[month].id, patch,
            changed_by="demo-seed", source_page="/scripts/seed_demo_data",
        )
        written += 1
    print(f"  ✓ {written} KPI values")


def main():
    parser = argparse.ArgumentParser(description="Seed HSE KPI demo data")
    parser.add_argument("--year", type=int, default=None, help="Reporting year")
    parser.add_argument("--no-values", action="store_true", help="Seed catalog only")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        year = args.year or app.config["HSE_REPORT_YEAR"]
        print(f"Seeding HSE KPI demo data for {year}")

        created = catalog_service.seed_monthly_periods(year)
        db.session.commit()
        print(f"  ✓ {created} new monthly periods")

        kpis = seed_catalog()
        if not args.no_values:
            seed_values(kpis, year)
        print("Done.")


if __name__ == "__main__":
    main()
