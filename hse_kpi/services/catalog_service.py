"""Catalog service — periods, sections and KPIs.

Transaction policy: create/update functions use flush() for ID generation,
never commit(). Caller (route handler / CLI command) owns the commit.

Operations:
- Period listing and idempotent monthly seeding
- Section / KPI listing, creation and partial update (soft deactivation)
- ``load_catalogs``: the three catalog reads behind the grid, analytics and
  export, with a single retry after a fixed delay
"""
import calendar
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import date

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from hse_kpi.core.exceptions import ConflictError, NotFoundError, ValidationError
from hse_kpi.models import db
from hse_kpi.models.audit import write_change
from hse_kpi.models.catalog import PERIOD_TYPES, Kpi, KpiPeriod, Section

logger = logging.getLogger(__name__)

_CODE_PART = re.compile(r"(\d+)")


def code_sort_key(code: str | None) -> tuple:
    """Natural ordering for KPI codes so that ``1.10`` sorts after ``1.9``."""
    parts = _CODE_PART.split(code or "")
    return tuple((0, int(p)) if p.isdigit() else (1, p) for p in parts if p != "")


# ── Periods ──────────────────────────────────────────────────────────────


def list_periods(year=None, period_type="monthly", active_only=True):
    """Return periods ordered by start date, optionally filtered by year/type."""
    if period_type and period_type not in PERIOD_TYPES:
        raise ValidationError(
            f"Unknown period_type '{period_type}'",
            details={"period_type": sorted(PERIOD_TYPES)},
        )
    q = KpiPeriod.query
    if year is not None:
        q = q.filter(KpiPeriod.year == year)
    if period_type:
        q = q.filter(KpiPeriod.period_type == period_type)
    if active_only:
        q = q.filter(KpiPeriod.is_active.is_(True))
    return q.order_by(KpiPeriod.start_date).all()


def get_period(period_id):
    period = db.session.get(KpiPeriod, period_id)
    if not period:
        raise NotFoundError(resource="KpiPeriod", resource_id=period_id)
    return period


def seed_monthly_periods(year):
    """Create the 12 monthly periods for ``year``; existing months are kept.

    Returns:
        Number of periods created (0 when the year is already seeded).
    """
    if not isinstance(year, int) or not 1900 <= year <= 9999:
        raise ValidationError("year must be a four-digit integer", details={"year": year})

    existing = {
        p.start_date
        for p in KpiPeriod.query.filter_by(year=year, period_type="monthly").all()
    }
    created = 0
    for month in range(1, 13):
        start = date(year, month, 1)
        if start in existing:
            continue
        last_day = calendar.monthrange(year, month)[1]
        db.session.add(KpiPeriod(
            period_type="monthly",
            year=year,
            month=month,
            start_date=start,
            end_date=date(year, month, last_day),
            label=f"{calendar.month_abbr[month]} {year}",
            is_active=True,
        ))
        created += 1
    db.session.flush()
    logger.info("Seeded %d monthly periods for %s", created, year)
    return created


# ── Sections ─────────────────────────────────────────────────────────────


def list_sections(active_only=False):
    q = Section.query
    if active_only:
        q = q.filter(Section.is_active.is_(True))
    return q.order_by(Section.order_idx, Section.name).all()


def _order_idx(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            "order_idx must be an integer", details={"order_idx": value},
        ) from None


def create_section(data, changed_by="system"):
    """Create a section. ``code`` must be unique.

    Returns:
        Section instance (already flushed).
    """
    code = (data.get("code") or "").strip()
    name = (data.get("name") or "").strip()
    if not code or not name:
        raise ValidationError("name and code are required", details={"name": name, "code": code})
    if Section.query.filter_by(code=code).first():
        raise ConflictError(resource="Section", field="code", value=code)

    section = Section(
        name=name,
        code=code,
        description=data.get("description", ""),
        order_idx=_order_idx(data.get("order_idx", 0)),
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(section)
    db.session.flush()
    write_change(
        entity="section", entity_id=section.id, field="catalog_create",
        new_value=section.to_dict(), changed_by=changed_by,
        reason=f'Created section "{section.name}"', source_page="/admin",
    )
    return section


# ── KPIs ─────────────────────────────────────────────────────────────────


def list_kpis(section_id=None, include_inactive=False):
    """Return KPIs in natural code order."""
    q = Kpi.query
    if section_id:
        q = q.filter(Kpi.section_id == section_id)
    if not include_inactive:
        q = q.filter(Kpi.is_active.is_(True))
    return sorted(q.all(), key=lambda k: (code_sort_key(k.code), k.id))


def get_kpi(kpi_id):
    kpi = db.session.get(Kpi, kpi_id)
    if not kpi:
        raise NotFoundError(resource="Kpi", resource_id=kpi_id)
    return kpi


def create_kpi(data, changed_by="system"):
    """Create a KPI under an existing section.

    Returns:
        Kpi instance (already flushed).
    """
    section_id = data.get("section_id")
    if not section_id or not db.session.get(Section, section_id):
        raise NotFoundError(resource="Section", resource_id=section_id)

    code = (data.get("code") or "").strip()
    name = (data.get("name") or "").strip()
    if not code or not name:
        raise ValidationError("name and code are required", details={"name": name, "code": code})
    if Kpi.query.filter_by(section_id=section_id, code=code).first():
        raise ConflictError(resource="Kpi", field="code", value=code)

    kpi = Kpi(
        section_id=section_id,
        code=code,
        name=name,
        description=data.get("description", ""),
        owner_user_id=data.get("owner_user_id"),
        target_formula=data.get("target_formula"),
        unit=data.get("unit"),
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(kpi)
    db.session.flush()
    write_change(
        entity="kpi", entity_id=kpi.id, field="catalog_create",
        new_value=kpi.to_dict(), changed_by=changed_by,
        reason=f'Created KPI {kpi.code} "{kpi.name}"', source_page="/admin",
    )
    return kpi


def update_kpi(kpi, data, changed_by="system"):
    """Apply a partial update. ``is_active = False`` is the only way to retire a KPI."""
    before = kpi.to_dict()
    section_id = data.get("section_id", kpi.section_id)
    if section_id != kpi.section_id and (
            not section_id or not db.session.get(Section, section_id)):
        raise NotFoundError(resource="Section", resource_id=section_id)

    required = {}
    for attr in ("code", "name"):
        if attr in data:
            value = data[attr].strip() if isinstance(data[attr], str) else ""
            if not value:
                raise ValidationError(f"{attr} cannot be empty", details={attr: data[attr]})
            required[attr] = value

    code = required.get("code", kpi.code)
    if (code, section_id) != (kpi.code, kpi.section_id):
        clash = Kpi.query.filter(
            Kpi.section_id == section_id, Kpi.code == code, Kpi.id != kpi.id,
        ).first()
        if clash:
            raise ConflictError(resource="Kpi", field="code", value=code)

    kpi.section_id = section_id
    for attr, value in required.items():
        setattr(kpi, attr, value)
    for attr in ("description", "owner_user_id", "target_formula", "unit"):
        if attr in data:
            setattr(kpi, attr, data[attr])
    if "is_active" in data:
        kpi.is_active = bool(data["is_active"])

    db.session.flush()
    after = kpi.to_dict()
    if after != before:
        reason = (f'Deactivated KPI {kpi.code}' if before["is_active"] and not kpi.is_active
                  else f'Updated KPI {kpi.code}')
        write_change(
            entity="kpi", entity_id=kpi.id, field="catalog_update",
            old_value=before, new_value=after, changed_by=changed_by,
            reason=reason, source_page="/admin",
        )
    return kpi


# ── Catalog snapshot ─────────────────────────────────────────────────────


@dataclass
class CatalogSnapshot:
    """The three reference sets a grid/export/analytics run is built from."""
    periods: list[KpiPeriod] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    kpis: list[Kpi] = field(default_factory=list)

    @property
    def period_ids(self) -> list[str]:
        return [p.id for p in self.periods]


def load_catalogs(year=None, period_type="monthly", section_id=None,
                  periods_active_only=True):
    """Load periods, sections and active KPIs, retrying once on a storage error.

    Each list is an independent query. On ``SQLAlchemyError`` the session is
    rolled back, the loader waits ``CATALOG_RETRY_DELAY_SECONDS`` and tries a
    second and last time; a second failure propagates.
    """
    delay = current_app.config.get("CATALOG_RETRY_DELAY_SECONDS", 1.0)

    def _load():
        return CatalogSnapshot(
            periods=list_periods(year=year, period_type=period_type,
                                 active_only=periods_active_only),
            sections=list_sections(),
            kpis=list_kpis(section_id=section_id),
        )

    try:
        return _load()
    except SQLAlchemyError as exc:
        logger.warning("Catalog load failed, retrying in %.1fs: %s", delay, exc)
        db.session.rollback()
        if delay:
            time.sleep(delay)
    return _load()
