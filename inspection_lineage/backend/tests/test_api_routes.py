# inspection_lineage/backend/tests/test_api_routes.py
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def headers(user):
    return {"X-User-Id": str(user.id), "X-User-Email": user.email}


def _schedule(client, headers, prop, day0):
    r = client.post(
        "/api/inspections",
        json={"property_id": prop.id, "inspection_type": "S8 - RFT", "scheduled_date": day0.isoformat()},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    return r.json()


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers["X-Request-ID"]


def test_writes_require_identity(client, prop, day0):
    r = client.post(
        "/api/inspections",
        json={"property_id": prop.id, "inspection_type": "S8 - RFT", "scheduled_date": day0.isoformat()},
    )
    assert r.status_code == 401
    assert r.json()["error"] == "NotAuthenticated"


def test_follow_up_flow_over_http(client, headers, prop, kitchen_template, day0):
    insp = _schedule(client, headers, prop, day0)

    r = client.post(f"/api/inspections/{insp['id']}/start", json={"template_id": kitchen_template.id}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["issues"] == 3

    checklist = client.get(f"/api/inspections/{insp['id']}/checklist").json()
    faucet = next(s for s in checklist["subtasks"] if s["description"] == "Fix faucet")
    assert faucet["inherited"] is False

    # fail without note -> 422 listing what is missing
    r = client.post(f"/api/subtasks/{faucet['id']}/status", json={"status": "fail"}, headers=headers)
    assert r.status_code == 422
    assert r.json()["missing"] == ["note", "assignee_id"]

    r = client.post(
        f"/api/subtasks/{faucet['id']}/status",
        json={"status": "fail", "note": "Drips", "assignee_id": int(headers["X-User-Id"])},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["to_status"] == "fail"
    assert r.json()["activity_kind"] == "note_added"

    summary = client.get(f"/api/inspections/{insp['id']}/summary").json()
    assert summary["failed"] == 1
    assert summary["vendors"] == [{"id": faucet["vendor_type_id"], "name": "Plumber", "value": 1}]

    r = client.post(
        f"/api/inspections/{insp['id']}/follow-ups",
        json={"scheduled_date": day0.isoformat()},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    f1 = r.json()["inspection"]
    assert f1["parent_inspection_id"] == insp["id"]
    assert r.json()["subtasks_copied"] == 3

    chain = client.get(f"/api/inspections/{f1['id']}/chain").json()
    assert chain["chain"] == [f1["id"], insp["id"]]
    assert chain["root_id"] == insp["id"]

    f1_list = client.get(f"/api/inspections/{f1['id']}/checklist").json()["subtasks"]
    f1_faucet = next(s for s in f1_list if s["description"] == "Fix faucet")
    assert f1_faucet["status"] == "pending"
    assert f1_faucet["inherited"] is True
    assert f1_faucet["original_inspection_id"] == insp["id"]

    acts = client.get(f"/api/subtasks/{faucet['id']}/activity").json()
    assert [a["activity_type"] for a in acts] == ["note_added"]


def test_unknown_inspection_is_404(client):
    r = client.get("/api/inspections/4242/checklist")
    assert r.status_code == 404
    assert r.json()["error"] == "LineageBroken"


def test_follow_up_date_validation_over_http(client, headers, prop, day0):
    insp = _schedule(client, headers, prop, day0)
    r = client.post(
        f"/api/inspections/{insp['id']}/follow-ups",
        json={"scheduled_date": "2000-01-01"},
        headers=headers,
    )
    assert r.status_code == 422
    assert r.json()["missing"] == ["scheduled_date"]


def test_add_and_edit_subtask_over_http(client, headers, prop, day0):
    insp = _schedule(client, headers, prop, day0)

    r = client.post(
        f"/api/inspections/{insp['id']}/subtasks",
        json={"description": "Patch drywall", "room_name": "Hallway"},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    task = r.json()
    assert task["original_inspection_id"] == insp["id"]
    assert task["room_name"] == "Hallway"

    r = client.patch(
        f"/api/subtasks/{task['id']}",
        json={"description": "Patch and paint drywall", "assigned_user_ids": [int(headers["X-User-Id"])]},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["description"] == "Patch and paint drywall"
    assert r.json()["assigned_user_ids"] == [int(headers["X-User-Id"])]
    assert r.json()["room_name"] == "Hallway"

    r = client.patch(f"/api/subtasks/{task['id']}", json={"description": ""}, headers=headers)
    assert r.status_code == 422

    r = client.post(f"/api/inspections/{insp['id']}/subtasks", json={"description": "x"})
    assert r.status_code == 401
