"""
HSE KPI Tracker
Catalog models — reference data the KPI grid is laid out on.

Models:
    - KpiPeriod: reporting interval (monthly/quarterly/yearly bucket)
    - Section:   ordered organizational grouping of KPIs
    - Kpi:       tracked indicator, owned by a Section
"""

import uuid
from datetime import datetime, timezone

from hse_kpi.models import db

__all__ = [
    "PERIOD_TYPES",
    "KpiPeriod",
    "Section",
    "Kpi",
]


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


PERIOD_TYPES = {"monthly", "quarterly", "yearly"}


# ═════════════════════════════════════════════════════════════════════════════
# 1. KpiPeriod
# ═════════════════════════════════════════════════════════════════════════════

class KpiPeriod(db.Model):
    """A reporting bucket values are recorded against. Created by seeding only."""

    __tablename__ = "kpi_period"
    __table_args__ = (
        db.UniqueConstraint("period_type", "start_date", name="uq_kpi_period_type_start"),
        db.Index("idx_kpi_period_year_type", "year", "period_type"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    period_type = db.Column(
        db.String(20), nullable=False, default="monthly",
        comment="monthly | quarterly | yearly",
    )
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=True, comment="1-12 for monthly periods")
    quarter = db.Column(db.Integer, nullable=True, comment="1-4 for quarterly periods")
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    label = db.Column(db.String(50), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "period_type": self.period_type,
            "year": self.year,
            "month": self.month,
            "quarter": self.quarter,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "label": self.label,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<KpiPeriod {self.label}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Section
# ═════════════════════════════════════════════════════════════════════════════

class Section(db.Model):
    """Organizational grouping of KPIs, displayed in ``order_idx`` order."""

    __tablename__ = "section"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(30), nullable=False, unique=True)
    description = db.Column(db.Text, default="")
    order_idx = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    kpis = db.relationship("Kpi", back_populates="section", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "order_idx": self.order_idx,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Section {self.code}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. Kpi
# ═════════════════════════════════════════════════════════════════════════════

class Kpi(db.Model):
    """
    A tracked indicator, e.g. ``1.3 Toolbox talks held``.

    Never deleted — deactivated with ``is_active = False`` so historical
    values and change records stay resolvable.
    """

    __tablename__ = "kpi"
    __table_args__ = (
        db.UniqueConstraint("section_id", "code", name="uq_kpi_section_code"),
        db.Index("idx_kpi_active_code", "is_active", "code"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    section_id = db.Column(
        db.String(36), db.ForeignKey("section.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    code = db.Column(db.String(30), nullable=False)
    name = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, default="")
    owner_user_id = db.Column(
        db.String(150), nullable=True,
        comment="Opaque reference to the owning user; not validated here",
    )
    target_formula = db.Column(db.String(500), nullable=True)
    unit = db.Column(db.String(100), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    section = db.relationship("Section", back_populates="kpis")

    def to_dict(self):
        return {
            "id": self.id,
            "section_id": self.section_id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "owner_user_id": self.owner_user_id,
            "target_formula": self.target_formula,
            "unit": self.unit,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Kpi {self.code}: {self.name}>"
