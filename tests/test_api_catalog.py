"""
API tests for the catalog, change-log and health endpoints.

Covers:
  - period seeding (201 then 200 when nothing new) and listing
  - section / KPI creation, duplicates → 409, missing fields → 400
  - KPI partial update and soft deactivation
  - change-log list filters, single entry, CSV export
  - health probes
"""

API = "/api/v1"


def _post(client, path, payload, **kw):
    return client.post(f"{API}{path}", json=payload, **kw)


def _get(client, path):
    return client.get(f"{API}{path}")


def _put(client, path, payload, **kw):
    return client.put(f"{API}{path}", json=payload, **kw)


# ── Periods ─────────────────────────────────────────────────────────────


def test_seed_and_list_periods(client):
    res = _post(client, "/periods/seed", {"year": 2025})
    assert res.status_code == 201
    assert res.get_json()["created"] == 12

    again = _post(client, "/periods/seed", {"year": 2025})
    assert again.status_code == 200
    assert again.get_json()["created"] == 0

    items = _get(client, "/periods?year=2025").get_json()["items"]
    assert [p["label"] for p in items][:3] == ["Jan 2025", "Feb 2025", "Mar 2025"]


def test_seed_periods_bad_year_422(client):
    res = _post(client, "/periods/seed", {"year": "next year"})
    assert res.status_code == 422


# ── Sections & KPIs ─────────────────────────────────────────────────────


def test_create_section_and_kpi(client):
    res = _post(client, "/sections", {"code": "SAFE", "name": "Safety", "order_idx": 1})
    assert res.status_code == 201
    section = res.get_json()

    res = _post(client, "/kpis", {
        "section_id": section["id"], "code": "1.1", "name": "Toolbox talks",
        "owner_user_id": "u-1", "target_formula": "4 / month", "unit": "Talks",
    })
    assert res.status_code == 201
    kpi = res.get_json()
    assert kpi["unit"] == "Talks"

    listed = _get(client, f"/kpis?section_id={section['id']}").get_json()
    assert listed["total"] == 1
    assert _get(client, f"/kpis/{kpi['id']}").get_json()["code"] == "1.1"


def test_duplicate_section_code_409(client, safety_section):
    res = _post(client, "/sections", {"code": "SAFE", "name": "Other"})
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"


def test_duplicate_kpi_code_409(client, safety_kpi):
    res = _post(client, "/kpis", {"section_id": safety_kpi.section_id, "code": "1.1", "name": "x"})
    assert res.status_code == 409


def test_update_kpi_to_duplicate_code_409(client, safety_kpi):
    other = _post(client, "/kpis", {
        "section_id": safety_kpi.section_id, "code": "1.2", "name": "Site inspections",
    }).get_json()

    res = _put(client, f"/kpis/{other['id']}", {"code": "1.1"})
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"
    assert _get(client, f"/kpis/{other['id']}").get_json()["code"] == "1.2"


def test_move_kpi_into_section_with_same_code_409(client, safety_kpi):
    health = _post(client, "/sections", {"code": "HLTH", "name": "Health"}).get_json()
    moved = _post(client, "/kpis", {
        "section_id": health["id"], "code": "1.1", "name": "Medicals",
    }).get_json()

    res = _put(client, f"/kpis/{moved['id']}", {"section_id": safety_kpi.section_id})
    assert res.status_code == 409


def test_update_kpi_keeping_own_code_ok(client, safety_kpi):
    res = _put(client, f"/kpis/{safety_kpi.id}", {"code": " 1.1 ", "name": "Toolbox talks"})
    assert res.status_code == 200
    assert res.get_json()["code"] == "1.1"


def test_update_kpi_blank_code_or_name_422(client, safety_kpi):
    for payload in ({"name": None}, {"code": ""}, {"name": "   "}, {"code": 11}):
        res = _put(client, f"/kpis/{safety_kpi.id}", payload)
        assert res.status_code == 422, payload

    kpi = _get(client, f"/kpis/{safety_kpi.id}").get_json()
    assert (kpi["code"], kpi["name"]) == ("1.1", "Toolbox talks conducted")


def test_create_section_bad_order_idx_422(client):
    res = _post(client, "/sections", {"code": "ENV", "name": "Environment", "order_idx": "abc"})
    assert res.status_code == 422
    assert _get(client, "/sections").get_json()["total"] == 0


def test_create_kpi_missing_fields_400(client):
    res = _post(client, "/kpis", {"code": "1.1"})
    assert res.status_code == 400
    assert set(res.get_json()["details"]["missing"]) == {"section_id", "name"}


def test_create_kpi_unknown_section_404(client):
    res = _post(client, "/kpis", {"section_id": "nope", "code": "1.1", "name": "x"})
    assert res.status_code == 404


def test_update_and_deactivate_kpi(client, safety_kpi):
    res = _put(client, f"/kpis/{safety_kpi.id}", {"target_formula": "6 / month"})
    assert res.status_code == 200
    assert res.get_json()["target_formula"] == "6 / month"

    _put(client, f"/kpis/{safety_kpi.id}", {"is_active": False})
    assert _get(client, "/kpis").get_json()["total"] == 0
    assert _get(client, "/kpis?include_inactive=true").get_json()["total"] == 1


def test_unknown_kpi_get_404(client):
    assert _get(client, "/kpis/missing").status_code == 404


# ── Change log ──────────────────────────────────────────────────────────


def test_audit_list_filter_and_detail(client, periods_2025, safety_kpi):
    jan = periods_2025[0]
    _put(client, f"/kpi-values/{safety_kpi.id}/{jan.id}", {"status": "in_progress"},
         headers={"X-User-Id": "alice"})
    _put(client, f"/kpi-values/{safety_kpi.id}/{jan.id}", {"status": "done"},
         headers={"X-User-Id": "bob"})

    data = _get(client, "/audit?entity=kpi_value").get_json()
    assert data["total"] == 2
    assert [c["field"] for c in data["changes"]] == ["kpi_update", "kpi_create"]

    bob = _get(client, "/audit?changed_by=bob").get_json()
    assert bob["total"] == 1
    change_id = bob["changes"][0]["id"]

    detail = _get(client, f"/audit/{change_id}").get_json()
    assert detail["changed_by"] == "bob"
    assert _get(client, "/audit/does-not-exist").status_code == 404


def test_audit_export_csv(client, periods_2025, safety_kpi):
    _put(client, f"/kpi-values/{safety_kpi.id}/{periods_2025[0].id}", {"status": "done"})

    res = _get(client, "/audit/export")
    assert res.status_code == 200
    assert res.content_type.startswith("text/csv")
    assert "HSE_Change_Log_" in res.headers["Content-Disposition"]
    assert b"kpi_create" in res.data


# ── Health ──────────────────────────────────────────────────────────────


def test_health_probes(client, periods_2025):
    assert _get(client, "/health/ready").get_json() == {"status": "ok"}

    res = _get(client, "/health/live")
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "ok"


def test_unknown_api_route_404(client):
    res = _get(client, "/nope")
    assert res.status_code == 404
    assert res.get_json()["error"] == "Not found"


def test_catalog_changes_are_logged(client):
    section = _post(client, "/sections", {"code": "ENV", "name": "Environment"},
                    headers={"X-User-Id": "admin"}).get_json()
    kpi = _post(client, "/kpis", {"section_id": section["id"], "code": "4.1", "name": "Audits"},
                headers={"X-User-Id": "admin"}).get_json()
    _put(client, f"/kpis/{kpi['id']}", {"is_active": False}, headers={"X-User-Id": "admin"})

    changes = _get(client, "/audit?changed_by=admin").get_json()["changes"]
    assert [(c["entity"], c["field"]) for c in changes] == [
        ("kpi", "catalog_update"), ("kpi", "catalog_create"), ("section", "catalog_create"),
    ]
    assert changes[0]["reason"] == "Deactivated KPI 4.1"
    assert changes[0]["old_value"]["is_active"] is True
    assert changes[0]["new_value"]["is_active"] is False


def test_audit_unknown_entity_filter_400(client):
    res = _get(client, "/audit?entity=spaceship")
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
