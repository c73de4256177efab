"""Tests for the transient cell operation tracker."""

from datetime import timedelta

from hse_kpi.services.cell_ops import CellOperationTracker, CellOpStatus


def test_unknown_cell_is_idle():
    tracker = CellOperationTracker()
    assert tracker.status_of("k", "p") is CellOpStatus.IDLE
    assert tracker.snapshot() == []


def test_saving_then_succeeded():
    tracker = CellOperationTracker()
    tracker.mark_saving("k", "p")
    assert tracker.status_of("k", "p") is CellOpStatus.SAVING

    tracker.mark_succeeded("k", "p")
    [entry] = tracker.snapshot()
    assert entry["status"] == "succeeded"
    assert entry["error"] is None


def test_failed_keeps_error_message_until_reset():
    tracker = CellOperationTracker()
    tracker.mark_failed("k", "p", ValueError("disk full"))
    assert tracker.snapshot()[0]["error"] == "disk full"

    tracker.reset("k", "p")
    assert tracker.status_of("k", "p") is CellOpStatus.IDLE


def test_cells_are_independent():
    tracker = CellOperationTracker()
    tracker.mark_saving("k", "jan")
    tracker.mark_failed("k", "feb", "boom")

    assert tracker.status_of("k", "jan") is CellOpStatus.SAVING
    assert tracker.status_of("k", "feb") is CellOpStatus.FAILED
    assert [e["period_id"] for e in tracker.snapshot()] == ["jan", "feb"]

    tracker.clear()
    assert tracker.snapshot() == []


def test_succeeded_entries_expire():
    tracker = CellOperationTracker(succeeded_ttl=timedelta(0))
    tracker.mark_succeeded("k", "p")
    tracker.mark_failed("k", "q", "boom")

    assert tracker.status_of("k", "p") is CellOpStatus.IDLE
    assert [e["period_id"] for e in tracker.snapshot()] == ["q"]


def test_tracker_size_is_capped():
    tracker = CellOperationTracker(max_entries=3)
    for i in range(10):
        tracker.mark_saving("k", f"p{i}")

    assert [e["period_id"] for e in tracker.snapshot()] == ["p7", "p8", "p9"]
