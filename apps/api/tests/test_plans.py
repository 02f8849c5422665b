from __future__ import annotations

from api_helpers import auth_headers, count_rows, make_child, make_user

from parentwise.schemas import UserRole


def _create_plan(client, user, **fields) -> dict:
    resp = client.post("/api/plans", json={"title": "Bedtime routine", **fields}, headers=auth_headers(user))
    assert resp.status_code == 201
    return resp.json()["data"]["plan"]


def test_new_plan_starts_as_draft(client) -> None:
    parent = make_user()
    child = make_child(parent)
    plan = _create_plan(client, parent, childId=child.id, goals={"primary": "Sleep by 8pm"})
    assert plan["status"] == "DRAFT"
    assert plan["progress"] == 0
    assert plan["goals"] == {"primary": "Sleep by 8pm"}
    assert count_rows("audit_logs", "action = 'PLAN_CREATE'") == 1


def test_partial_progress_activates_plan(client) -> None:
    parent = make_user()
    plan = _create_plan(client, parent)
    resp = client.patch(f"/api/plans/{plan['id']}/progress", json={"progress": 50}, headers=auth_headers(parent))
    assert resp.status_code == 200
    updated = resp.json()["data"]["plan"]
    assert updated["status"] == "ACTIVE"
    assert updated["progress"] == 50
    assert updated["completedAt"] is None
    assert count_rows("notifications") == 0


def test_full_progress_completes_plan_and_notifies_once(client) -> None:
    parent = make_user()
    plan = _create_plan(client, parent)
    headers = auth_headers(parent)

    resp = client.patch(f"/api/plans/{plan['id']}/progress", json={"progress": 100}, headers=headers)
    assert resp.status_code == 200
    completed = resp.json()["data"]["plan"]
    assert completed["status"] == "COMPLETED"
    assert completed["completedAt"] is not None

    client.patch(f"/api/plans/{plan['id']}/progress", json={"progress": 100}, headers=headers)
    assert count_rows("notifications", "type = 'PLAN_UPDATE'") == 1
    assert count_rows("audit_logs", "action = 'PLAN_PROGRESS_UPDATE'") == 2

    notifications = client.get("/api/notifications", headers=headers).json()["data"]["notifications"]
    assert notifications[0]["data"] == {"planId": plan["id"]}


def test_progress_out_of_range(client) -> None:
    parent = make_user()
    plan = _create_plan(client, parent)
    resp = client.patch(f"/api/plans/{plan['id']}/progress", json={"progress": 101}, headers=auth_headers(parent))
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "progress"


def test_other_parents_plan_is_hidden(client) -> None:
    owner = make_user("owner@example.com")
    plan = _create_plan(client, owner)
    stranger = make_user("stranger@example.com")
    admin = make_user("admin@example.com", role=UserRole.ADMIN)

    hidden = client.patch(f"/api/plans/{plan['id']}/progress", json={"progress": 10}, headers=auth_headers(stranger))
    assert hidden.status_code == 404

    allowed = client.patch(f"/api/plans/{plan['id']}/progress", json={"progress": 10}, headers=auth_headers(admin))
    assert allowed.status_code == 200


def test_list_plans_filters_by_status(client) -> None:
    parent = make_user()
    headers = auth_headers(parent)
    draft = _create_plan(client, parent, title="Draft plan")
    active = _create_plan(client, parent, title="Active plan")
    client.patch(f"/api/plans/{active['id']}/progress", json={"progress": 20}, headers=headers)

    everything = client.get("/api/plans", headers=headers).json()["data"]["plans"]
    assert {plan["id"] for plan in everything} == {draft["id"], active["id"]}

    only_active = client.get("/api/plans", params={"status": "ACTIVE"}, headers=headers).json()["data"]["plans"]
    assert [plan["id"] for plan in only_active] == [active["id"]]
