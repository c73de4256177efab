"""
HSE KPI Tracker
Change log model — append-only audit trail of KPI value and catalog writes.

Models:
    - ChangeSet: one row per write, carrying old/new JSON snapshots.

The change log is advisory: it never gates or rolls back the write it
documents.
"""

import json
import uuid
from datetime import UTC, datetime

from hse_kpi.models import db

CHANGE_ENTITIES = {"kpi_value", "kpi", "section"}

CHANGE_FIELDS = {
    "kpi_create",
    "kpi_update",
    "catalog_create",
    "catalog_update",
}


def _uuid():
    return str(uuid.uuid4())


def _loads(raw):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return raw


class ChangeSet(db.Model):
    """
    Immutable audit entry.

    ``old_value`` / ``new_value`` hold JSON text; a creation has no
    ``old_value``.
    """

    __tablename__ = "change_set"
    __table_args__ = (
        db.Index("idx_change_set_entity", "entity", "entity_id"),
        db.Index("idx_change_set_changed_by", "changed_by"),
        db.Index("idx_change_set_changed_at", "changed_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    entity = db.Column(db.String(30), nullable=False, comment="kpi_value | kpi | …")
    entity_id = db.Column(db.String(36), nullable=False)
    field = db.Column(db.String(60), nullable=False, comment="kpi_create | kpi_update | …")
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    changed_by = db.Column(db.String(150), nullable=False, default="system")
    changed_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )
    reason = db.Column(db.Text, nullable=True)
    source_page = db.Column(db.String(200), nullable=True)

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def old(self):
        return _loads(self.old_value)

    @property
    def new(self):
        return _loads(self.new_value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "field": self.field,
            "old_value": self.old,
            "new_value": self.new,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
            "reason": self.reason,
            "source_page": self.source_page,
        }

    def __repr__(self):
        return f"<ChangeSet {self.id}: {self.field} on {self.entity}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_change(
    *,
    entity: str,
    entity_id: str,
    field: str,
    old_value: dict | None = None,
    new_value: dict | None = None,
    changed_by: str = "system",
    reason: str | None = None,
    source_page: str | None = None,
) -> ChangeSet:
    """
    Append a single change row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) ChangeSet instance.
    """
    entry = ChangeSet(
        entity=entity,
        entity_id=str(entity_id),
        field=field,
        old_value=json.dumps(old_value, default=str) if old_value is not None else None,
        new_value=json.dumps(new_value, default=str) if new_value is not None else None,
        changed_by=changed_by or "system",
        reason=reason,
        source_page=source_page,
    )
    db.session.add(entry)
    db.session.flush()
    return entry
