"""
API tests for KPI value read/upsert and the grid endpoints.

Covers:
  - PUT creates (version 1) then updates (version + 1)
  - GET returns 404 for an empty cell and the record once written
  - acting user from X-User-Id lands in the change log
  - expected_version conflict → 409 with current_version
  - validation errors → 400 / 422, unknown KPI → 404
  - cell operation tracker reflects succeeded / failed writes
  - GET /grid returns a dense grid
"""

from hse_kpi.models.audit import ChangeSet

API = "/api/v1"


def _put(client, kpi_id, period_id, payload, user=None):
    headers = {"X-User-Id": user} if user else {}
    return client.put(f"{API}/kpi-values/{kpi_id}/{period_id}", json=payload, headers=headers)


def _get(client, kpi_id, period_id):
    return client.get(f"{API}/kpi-values/{kpi_id}/{period_id}")


# ── Upsert ──────────────────────────────────────────────────────────────


def test_put_creates_then_updates(client, periods_2025, safety_kpi):
    march = periods_2025[2]

    res = _put(client, safety_kpi.id, march.id, {"status": "done", "text_value": "3"})
    assert res.status_code == 200
    created = res.get_json()
    assert created["version"] == 1
    assert created["numeric_value"] == 3.0

    res = _put(client, safety_kpi.id, march.id, {"evidence_url": "https://example.com/x"})
    updated = res.get_json()
    assert updated["version"] == 2
    assert updated["status"] == "done"
    assert updated["id"] == created["id"]


def test_get_empty_cell_404_then_found(client, periods_2025, safety_kpi):
    jan = periods_2025[0]
    assert _get(client, safety_kpi.id, jan.id).status_code == 404

    _put(client, safety_kpi.id, jan.id, {"status": "in_progress"})

    res = _get(client, safety_kpi.id, jan.id)
    assert res.status_code == 200
    assert res.get_json()["status"] == "in_progress"


def test_actor_header_recorded(client, periods_2025, safety_kpi):
    _put(client, safety_kpi.id, periods_2025[0].id, {"status": "done"}, user="hse-lead")
    assert ChangeSet.query.filter_by(entity="kpi_value").one().changed_by == "hse-lead"


def test_actor_defaults_to_system(client, periods_2025, safety_kpi):
    _put(client, safety_kpi.id, periods_2025[0].id, {"status": "done"})
    assert ChangeSet.query.filter_by(entity="kpi_value").one().changed_by == "system"


def test_stale_expected_version_409(client, periods_2025, safety_kpi):
    jan = periods_2025[0]
    _put(client, safety_kpi.id, jan.id, {"status": "in_progress"})
    _put(client, safety_kpi.id, jan.id, {"status": "blocked"})

    res = _put(client, safety_kpi.id, jan.id, {"status": "done", "expected_version": 1})

    assert res.status_code == 409
    body = res.get_json()
    assert body["code"] == "ERR_CONFLICT_VERSION"
    assert body["details"]["current_version"] == 2
    assert _get(client, safety_kpi.id, jan.id).get_json()["status"] == "blocked"


def test_invalid_status_422(client, periods_2025, safety_kpi):
    res = _put(client, safety_kpi.id, periods_2025[0].id, {"status": "finished"})
    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_VALIDATION_RULE"


def test_empty_patch_400(client, periods_2025, safety_kpi):
    res = _put(client, safety_kpi.id, periods_2025[0].id, {"unrelated": 1})
    assert res.status_code == 400


def test_non_integer_expected_version_400(client, periods_2025, safety_kpi):
    res = _put(client, safety_kpi.id, periods_2025[0].id,
               {"status": "done", "expected_version": "2"})
    assert res.status_code == 400


def test_unknown_kpi_404(client, periods_2025):
    res = _put(client, "missing", periods_2025[0].id, {"status": "done"})
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ── Cell operation tracker ──────────────────────────────────────────────


def test_cell_status_tracks_outcomes(client, periods_2025, safety_kpi):
    jan, feb = periods_2025[0], periods_2025[1]
    _put(client, safety_kpi.id, jan.id, {"status": "done"})
    _put(client, safety_kpi.id, feb.id, {"status": "bogus"})

    items = client.get(f"{API}/grid/cell-status").get_json()["items"]
    by_period = {i["period_id"]: i for i in items}

    assert by_period[jan.id]["status"] == "succeeded"
    assert by_period[feb.id]["status"] == "failed"
    assert "bogus" in by_period[feb.id]["error"]


def test_unknown_cell_put_is_not_tracked(client, periods_2025, safety_kpi):
    for i in range(5):
        assert _put(client, f"ghost-{i}", periods_2025[0].id, {"status": "done"}).status_code == 404
    assert _put(client, safety_kpi.id, "no-such-period", {"status": "done"}).status_code == 404

    res = client.get(f"{API}/grid/cell-status").get_json()
    assert res["items"] == []
    assert res["total"] == 0


def test_non_finite_numeric_value_422(client, periods_2025, safety_kpi):
    res = _put(client, safety_kpi.id, periods_2025[0].id, {"numeric_value": "NaN"})
    assert res.status_code == 422
    assert _get(client, safety_kpi.id, periods_2025[0].id).status_code == 404


# ── Grid ────────────────────────────────────────────────────────────────


def test_grid_endpoint(client, periods_2025, safety_kpi):
    _put(client, safety_kpi.id, periods_2025[2].id, {"status": "done", "text_value": "3"})

    res = client.get(f"{API}/grid?year=2025")
    assert res.status_code == 200
    grid = res.get_json()

    assert grid["year"] == 2025
    assert len(grid["periods"]) == 12
    row = grid["sections"][0]["rows"][0]
    assert row["kpi"]["code"] == "1.1"
    assert len(row["cells"]) == 12
    assert row["cells"][2]["display_value"] == "3"
    assert row["cells"][0]["status"] == "not_started"


def test_grid_endpoint_bad_period_type_422(client):
    res = client.get(f"{API}/grid?period_type=weekly")
    assert res.status_code == 422
