"""Transient per-cell operation status.

Tracks what the HTTP layer is doing to each grid cell (saving, just saved,
failed) separately from the persisted KpiValue. Process-local, in memory,
never written to the database.

A ``succeeded`` entry decays back to idle after ``succeeded_ttl``; the map
never holds more than ``max_entries`` cells (oldest changes are dropped
first).
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

SUCCEEDED_TTL = timedelta(seconds=30)
MAX_ENTRIES = 5000


class CellOpStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class CellOpState:
    status: CellOpStatus
    changed_at: datetime
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "changed_at": self.changed_at.isoformat(),
            "error": self.error,
        }


class CellOperationTracker:
    """Map of (kpi_id, period_id) → CellOpState. Thread-safe."""

    def __init__(self, succeeded_ttl=SUCCEEDED_TTL, max_entries=MAX_ENTRIES):
        self._lock = threading.Lock()
        self._states: dict[tuple[str, str], CellOpState] = {}
        self.succeeded_ttl = succeeded_ttl
        self.max_entries = max_entries

    @staticmethod
    def _now():
        return datetime.now(timezone.utc)

    def _expired(self, state, now):
        return (state.status is CellOpStatus.SUCCEEDED
                and now - state.changed_at >= self.succeeded_ttl)

    def _prune(self, now):
        # Caller holds the lock.
        for key in [k for k, s in self._states.items() if self._expired(s, now)]:
            del self._states[key]
        overflow = len(self._states) - self.max_entries
        if overflow > 0:
            oldest = sorted(self._states, key=lambda k: self._states[k].changed_at)
            for key in oldest[:overflow]:
                del self._states[key]

    def _set(self, key, status, error=None):
        now = self._now()
        with self._lock:
            self._states.pop(key, None)
            self._states[key] = CellOpState(status=status, changed_at=now, error=error)
            self._prune(now)

    def mark_saving(self, kpi_id, period_id):
        self._set((kpi_id, period_id), CellOpStatus.SAVING)

    def mark_succeeded(self, kpi_id, period_id):
        self._set((kpi_id, period_id), CellOpStatus.SUCCEEDED)

    def mark_failed(self, kpi_id, period_id, error):
        self._set((kpi_id, period_id), CellOpStatus.FAILED, error=str(error))

    def reset(self, kpi_id, period_id):
        with self._lock:
            self._states.pop((kpi_id, period_id), None)

    def clear(self):
        with self._lock:
            self._states.clear()

    def status_of(self, kpi_id, period_id) -> CellOpStatus:
        with self._lock:
            state = self._states.get((kpi_id, period_id))
        if state is None or self._expired(state, self._now()):
            return CellOpStatus.IDLE
        return state.status

    def snapshot(self) -> list[dict]:
        """All non-idle cells, oldest change first."""
        with self._lock:
            self._prune(self._now())
            items = list(self._states.items())
        items.sort(key=lambda kv: kv[1].changed_at)
        return [
            {"kpi_id": kpi_id, "period_id": period_id, **state.to_dict()}
            for (kpi_id, period_id), state in items
        ]


# Module-level tracker shared by the grid blueprints.
cell_tracker = CellOperationTracker()
