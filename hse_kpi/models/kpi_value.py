"""
HSE KPI Tracker
KPI value model — the only mutable, shared table behind the grid.

One row per (kpi_id, period_id) natural key. Rows appear on the first edit
of a cell and are updated in place afterwards; they are never deleted.
"""

import uuid
from datetime import datetime, timezone

from hse_kpi.models import db

KPI_STATUSES = ("not_started", "in_progress", "done", "blocked", "needs_review")
DEFAULT_STATUS = "not_started"


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class KpiValue(db.Model):
    """Recorded status/value of one KPI for one period."""

    __tablename__ = "kpi_value"
    __table_args__ = (
        db.UniqueConstraint("kpi_id", "period_id", name="uq_kpi_value_kpi_period"),
        db.Index("idx_kpi_value_period", "period_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    kpi_id = db.Column(
        db.String(36), db.ForeignKey("kpi.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    period_id = db.Column(
        db.String(36), db.ForeignKey("kpi_period.id", ondelete="CASCADE"),
        nullable=False,
    )
    status = db.Column(
        db.String(20), nullable=False, default=DEFAULT_STATUS,
        comment="not_started | in_progress | done | blocked | needs_review",
    )
    numeric_value = db.Column(db.Float, nullable=True)
    text_value = db.Column(db.Text, nullable=True)
    evidence_url = db.Column(db.String(1000), nullable=True)
    attachment_count = db.Column(
        db.Integer, nullable=False, default=0,
        comment="Denormalized count maintained by the evidence store",
    )
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    kpi = db.relationship("Kpi")
    period = db.relationship("KpiPeriod")

    @property
    def natural_key(self) -> tuple[str, str]:
        return self.kpi_id, self.period_id

    def snapshot(self) -> dict:
        """Fields recorded in the change log for every write."""
        return {
            "status": self.status,
            "text_value": self.text_value,
            "numeric_value": self.numeric_value,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kpi_id": self.kpi_id,
            "period_id": self.period_id,
            "status": self.status,
            "numeric_value": self.numeric_value,
            "text_value": self.text_value,
            "evidence_url": self.evidence_url,
            "attachment_count": self.attachment_count or 0,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<KpiValue {self.kpi_id}/{self.period_id} v{self.version} {self.status}>"
