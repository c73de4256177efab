"""
KPI value store — read and upsert of grid cells.

Owns the transaction for every write: each ``upsert_value`` call either
commits the full patch (plus, best-effort, its change-log row) or rolls
back and raises.

Write protocol:
    1. Resolve Kpi and KpiPeriod (404 when missing).
    2. Normalise the patch (status enum, text → numeric coercion).
    3. Insert (version 1) or ``UPDATE … SET version = version + 1``,
       optionally guarded by ``AND version = :expected``.
    4. Append one ChangeSet row inside a SAVEPOINT; a failure there is
       logged and rolled back on its own.
    5. Commit.
"""

import logging
import math
import re
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from hse_kpi.core.exceptions import ConflictError, ValidationError, VersionConflictError
from hse_kpi.models import db
from hse_kpi.models.audit import write_change
from hse_kpi.models.catalog import Kpi
from hse_kpi.models.kpi_value import DEFAULT_STATUS, KPI_STATUSES, KpiValue
from hse_kpi.services.catalog_service import get_kpi, get_period

logger = logging.getLogger(__name__)

# Integer or decimal, optional sign, e.g. "42", "-3.5", ".5", "7."
_NUMERIC_TEXT = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")

PATCH_FIELDS = ("status", "text_value", "numeric_value", "evidence_url")


def _utcnow():
    return datetime.now(timezone.utc)


def parse_numeric_text(text) -> float | None:
    """Return the number a cell's text spells, or None if it is not purely numeric."""
    if text is None:
        return None
    candidate = str(text).strip()
    if not _NUMERIC_TEXT.match(candidate):
        return None
    return float(candidate)


# ── Reads ────────────────────────────────────────────────────────────────


def get_value(kpi_id, period_id):
    """Return the KpiValue for the natural key, or None when the cell is empty."""
    return KpiValue.query.filter_by(kpi_id=kpi_id, period_id=period_id).first()


def list_values(period_ids=None, kpi_ids=None, section_id=None):
    """Scan stored values, optionally restricted to periods / KPIs / one section.

    ``None`` means "no filter"; an empty list matches nothing. Rows come back
    oldest-update first so that later rows win when callers fold them into a
    dict.
    """
    if period_ids is not None and not period_ids:
        return []
    if kpi_ids is not None and not kpi_ids:
        return []

    q = KpiValue.query
    if period_ids is not None:
        q = q.filter(KpiValue.period_id.in_(list(period_ids)))
    if kpi_ids is not None:
        q = q.filter(KpiValue.kpi_id.in_(list(kpi_ids)))
    if section_id:
        q = q.join(Kpi, Kpi.id == KpiValue.kpi_id).filter(Kpi.section_id == section_id)
    return q.order_by(KpiValue.updated_at, KpiValue.id).all()


# ── Patch normalisation ──────────────────────────────────────────────────


def normalize_patch(patch: dict) -> dict:
    """Turn a raw patch into column assignments.

    Only keys present in ``patch`` are returned, so absent fields keep their
    stored value. A fully numeric ``text_value`` also sets ``numeric_value``;
    an explicit ``numeric_value`` in the same patch takes precedence.

    Raises:
        ValidationError: unknown status or a non-numeric explicit numeric_value.
    """
    changes = {}

    if "status" in patch:
        status = patch["status"]
        if status not in KPI_STATUSES:
            raise ValidationError(
                f"Invalid status '{status}'",
                details={"status": list(KPI_STATUSES)},
            )
        changes["status"] = status

    if "text_value" in patch:
        raw = patch["text_value"]
        text = None if raw is None or str(raw).strip() == "" else str(raw)
        changes["text_value"] = text
        number = parse_numeric_text(text)
        if number is not None:
            changes["numeric_value"] = number

    if "numeric_value" in patch:
        raw = patch["numeric_value"]
        if raw is None or raw == "":
            changes["numeric_value"] = None
        elif isinstance(raw, bool):
            raise ValidationError("numeric_value must be a number",
                                  details={"numeric_value": raw})
        else:
            try:
                number = float(raw)
            except (TypeError, ValueError, OverflowError):
                raise ValidationError("numeric_value must be a number",
                                      details={"numeric_value": raw}) from None
            if not math.isfinite(number):
                raise ValidationError("numeric_value must be a finite number",
                                      details={"numeric_value": str(raw)})
            changes["numeric_value"] = number

    if "evidence_url" in patch:
        changes["evidence_url"] = patch["evidence_url"] or None

    return changes


# ── Write ────────────────────────────────────────────────────────────────


def upsert_value(
    kpi_id,
    period_id,
    patch: dict,
    *,
    changed_by: str = "system",
    expected_version: int | None = None,
    source_page: str = "/grid",
) -> KpiValue:
    """Create or partially update the value for (kpi_id, period_id).

    Args:
        kpi_id: Kpi PK.
        period_id: KpiPeriod PK.
        patch: Any subset of ``status``, ``text_value``, ``numeric_value``,
            ``evidence_url``. Other keys are ignored.
        changed_by: Opaque acting-user id stamped into the change log.
        expected_version: When given, the write only lands if the stored
            version equals it (0 = "I expect no record yet"). When None the
            last write wins.
        source_page: Originating UI location for the change log.

    Returns:
        The resulting KpiValue, committed.

    Raises:
        NotFoundError: Kpi or KpiPeriod does not exist.
        ValidationError: invalid status / numeric_value.
        VersionConflictError: ``expected_version`` did not match.
        ConflictError: a concurrent writer created the record first.
    """
    kpi = get_kpi(kpi_id)
    period = get_period(period_id)
    changes = normalize_patch(patch or {})
    cell_key = f"{kpi_id}/{period_id}"

    existing = get_value(kpi_id, period_id)
    try:
        if existing is None:
            if expected_version not in (None, 0):
                raise VersionConflictError("KpiValue", cell_key, expected_version, 0)
            value = KpiValue(
                kpi_id=kpi_id,
                period_id=period_id,
                status=changes.get("status", DEFAULT_STATUS),
                text_value=changes.get("text_value"),
                numeric_value=changes.get("numeric_value"),
                evidence_url=changes.get("evidence_url"),
                version=1,
            )
            db.session.add(value)
            db.session.flush()
            old_snapshot = None
            change_field = "kpi_create"
            reason = f'Created new KPI value for "{kpi.name}" in period "{period.label}"'
        else:
            value = existing
            old_snapshot = existing.snapshot()
            if expected_version is not None and expected_version != existing.version:
                raise VersionConflictError(
                    "KpiValue", cell_key, expected_version, existing.version,
                )

            assignments = dict(changes)
            assignments["version"] = KpiValue.version + 1
            assignments["updated_at"] = _utcnow()
            q = KpiValue.query.filter(KpiValue.id == existing.id)
            if expected_version is not None:
                q = q.filter(KpiValue.version == expected_version)
            if q.update(assignments, synchronize_session=False) == 0:
                # Lost the race between the read above and this UPDATE
                db.session.rollback()
                current = get_value(kpi_id, period_id)
                raise VersionConflictError(
                    "KpiValue", cell_key, expected_version,
                    current.version if current else 0,
                )
            db.session.refresh(value)
            change_field = "kpi_update"
            reason = f'Updated KPI "{kpi.name}" for period "{period.label}"'

        new_snapshot = value.snapshot()
        if change_field == "kpi_create":
            new_snapshot.update(kpi_name=kpi.name, period_label=period.label)
        _record_change(value, change_field, old_snapshot, new_snapshot,
                       changed_by, reason, source_page)

        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Natural key collision on %s: %s", cell_key, exc.orig)
        raise ConflictError(resource="KpiValue", field="kpi_id,period_id", value=cell_key) from exc
    except VersionConflictError:
        db.session.rollback()
        logger.info("Version conflict on %s (expected=%s)", cell_key, expected_version)
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("KPI value write failed for %s", cell_key)
        raise

    logger.info(
        "KpiValue %s %s v%s status=%s by=%s",
        value.id, change_field, value.version, value.status, changed_by,
        extra={"kpi_id": kpi_id, "period_id": period_id, "user_id": changed_by},
    )
    return value


def _record_change(value, change_field, old_snapshot, new_snapshot,
                   changed_by, reason, source_page):
    """Append the change-log row in a SAVEPOINT; never raises."""
    try:
        with db.session.begin_nested():
            write_change(
                entity="kpi_value",
                entity_id=value.id,
                field=change_field,
                old_value=old_snapshot,
                new_value=new_snapshot,
                changed_by=changed_by,
                reason=reason,
                source_page=source_page,
            )
    except Exception:
        logger.warning("Change log write failed for kpi_value %s", value.id, exc_info=True)
