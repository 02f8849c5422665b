from __future__ import annotations

from datetime import date, timedelta

from api_helpers import auth_headers, count_rows, make_child, make_user

from parentwise.db import transaction
from parentwise.repositories import notifications as notification_repo
from parentwise.schemas import NotificationType, SubscriptionTier, UserRole


def test_create_and_list_children(client) -> None:
    parent = make_user()
    headers = auth_headers(parent)
    resp = client.post(
        "/api/children",
        json={"name": "Mia", "dateOfBirth": "2021-09-01", "interests": ["dinosaurs"], "allergies": ["peanuts"]},
        headers=headers,
    )
    assert resp.status_code == 201
    child = resp.json()["data"]["child"]
    assert child["gender"] == "PREFER_NOT_TO_SAY"
    assert child["allergies"] == ["peanuts"]
    assert count_rows("audit_logs", "action = 'CHILD_CREATE'") == 1

    other = make_user("other@example.com")
    make_child(other, name="Someone else")
    listed = client.get("/api/children", headers=headers).json()["data"]["children"]
    assert [item["name"] for item in listed] == ["Mia"]


def test_child_detail_and_access(client) -> None:
    parent = make_user()
    child = make_child(parent)
    stranger = make_user("stranger@example.com")
    admin = make_user("admin@example.com", role=UserRole.ADMIN)

    resp = client.get(f"/api/children/{child.id}", headers=auth_headers(parent))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["child"]["name"] == "Leo"
    assert data["milestones"] == []
    assert data["recentActivityLogs"] == []
    assert data["activePlans"] == []
    assert data["assessments"] == []

    hidden = client.get(f"/api/children/{child.id}", headers=auth_headers(stranger))
    assert hidden.status_code == 404
    assert hidden.json() == {"error": "Child not found or access denied"}

    assert client.get(f"/api/children/{child.id}", headers=auth_headers(admin)).status_code == 200


def test_update_child(client) -> None:
    parent = make_user()
    child = make_child(parent, notes="Loves trains")
    resp = client.patch(
        f"/api/children/{child.id}",
        json={"interests": ["trains", "painting"], "notes": None, "name": None},
        headers=auth_headers(parent),
    )
    assert resp.status_code == 200
    updated = resp.json()["data"]["child"]
    assert updated["interests"] == ["trains", "painting"]
    assert updated["notes"] is None
    assert updated["name"] == "Leo"
    assert count_rows("audit_logs", "action = 'CHILD_UPDATE'") == 1


def test_milestones_lifecycle(client) -> None:
    parent = make_user()
    child = make_child(parent)
    headers = auth_headers(parent)

    created = client.post(
        f"/api/children/{child.id}/milestones",
        json={
            "title": "Walks independently",
            "description": "Takes several steps without support",
            "category": "PHYSICAL",
            "ageRangeMin": 9,
            "ageRangeMax": 15,
        },
        headers=headers,
    )
    assert created.status_code == 201
    milestone = created.json()["data"]["milestone"]
    assert milestone["isCompleted"] is False

    done = client.post(f"/api/milestones/{milestone['id']}/complete", json={"notes": "First steps!"}, headers=headers)
    assert done.status_code == 200
    assert done.json()["data"]["milestone"]["isCompleted"] is True
    assert done.json()["data"]["milestone"]["notes"] == "First steps!"

    open_items = client.get(
        f"/api/children/{child.id}/milestones", params={"completed": "false"}, headers=headers
    ).json()["data"]["milestones"]
    assert open_items == []
    assert count_rows("audit_logs", "action = 'MILESTONE_COMPLETE'") == 1

    no_body = client.post(f"/api/milestones/{milestone['id']}/complete", headers=headers)
    assert no_body.status_code == 200


def test_milestone_range_must_be_ordered(client) -> None:
    parent = make_user()
    child = make_child(parent)
    resp = client.post(
        f"/api/children/{child.id}/milestones",
        json={"title": "Talks", "description": "Two-word phrases", "category": "LANGUAGE", "ageRangeMin": 30, "ageRangeMax": 18},
        headers=auth_headers(parent),
    )
    assert resp.status_code == 400


def _activity(client, admin, title: str, age_min: int, age_max: int, **fields) -> dict:
    body = {
        "title": title,
        "description": "An activity",
        "instructions": "Do the thing",
        "ageRangeMin": age_min,
        "ageRangeMax": age_max,
        "duration": 20,
        "difficulty": "EASY",
        "type": "CREATIVE",
        **fields,
    }
    resp = client.post("/api/activities", json=body, headers=auth_headers(admin))
    assert resp.status_code == 201
    return resp.json()["data"]["activity"]


def test_activity_catalogue_by_child_age(client) -> None:
    admin = make_user("admin@example.com", role=UserRole.ADMIN)
    parent = make_user()
    child = make_child(parent, date_of_birth=date.today() - timedelta(days=365))

    fits = _activity(client, admin, "Finger painting", 6, 18)
    _activity(client, admin, "Board games", 36, 60)
    _activity(client, admin, "Long hike", 6, 18, duration=90)

    resp = client.get("/api/activities", params={"childId": child.id, "duration": 30}, headers=auth_headers(parent))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["childAgeMonths"] in (11, 12)
    assert [activity["id"] for activity in data["activities"]] == [fits["id"]]


def test_only_admins_create_activities(client) -> None:
    parent = make_user()
    resp = client.post(
        "/api/activities",
        json={
            "title": "Sneaky",
            "description": "x",
            "instructions": "x",
            "ageRangeMin": 0,
            "ageRangeMax": 12,
            "duration": 5,
            "difficulty": "EASY",
            "type": "SOCIAL",
        },
        headers=auth_headers(parent),
    )
    assert resp.status_code == 403
    assert count_rows("activities") == 0


def test_log_activity(client) -> None:
    admin = make_user("admin@example.com", role=UserRole.ADMIN)
    parent = make_user()
    child = make_child(parent)
    activity = _activity(client, admin, "Sandbox", 12, 48)
    headers = auth_headers(parent)

    resp = client.post(
        f"/api/activities/{activity['id']}/log",
        json={"childId": child.id, "enjoyment": 5, "skills": ["scooping"]},
        headers=headers,
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["log"]["enjoyment"] == 5

    logs = client.get(f"/api/children/{child.id}/activity-logs", headers=headers).json()["data"]["logs"]
    assert len(logs) == 1
    assert logs[0]["skills"] == ["scooping"]

    bad_rating = client.post(
        f"/api/activities/{activity['id']}/log", json={"childId": child.id, "enjoyment": 9}, headers=headers
    )
    assert bad_rating.status_code == 400
    missing = client.post("/api/activities/missing/log", json={"childId": child.id}, headers=headers)
    assert missing.status_code == 404


def test_premium_content_is_gated(client) -> None:
    admin = make_user("admin@example.com", role=UserRole.ADMIN, tier=SubscriptionTier.PREMIUM)
    for title, premium in (("Free article", False), ("Premium guide", True)):
        resp = client.post(
            "/api/content",
            json={"title": title, "contentType": "article", "body": "...", "isPremium": premium},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 201

    free_parent = make_user("free@example.com")
    premium_parent = make_user("premium@example.com", tier=SubscriptionTier.PREMIUM)

    free_items = client.get("/api/content", headers=auth_headers(free_parent)).json()["data"]["items"]
    assert [item["title"] for item in free_items] == ["Free article"]

    premium_items = client.get("/api/content", headers=auth_headers(premium_parent)).json()["data"]["items"]
    assert {item["title"] for item in premium_items} == {"Free article", "Premium guide"}


def test_notifications_are_private(client) -> None:
    parent = make_user()
    other = make_user("other@example.com")
    with transaction() as conn:
        notification = notification_repo.create_notification(
            conn,
            user_id=parent.id,
            type=NotificationType.MILESTONE_REMINDER,
            title="Check milestones",
            message="Leo may be ready for new milestones.",
        )

    assert client.post(f"/api/notifications/{notification.id}/read", headers=auth_headers(other)).status_code == 404

    resp = client.post(f"/api/notifications/{notification.id}/read", headers=auth_headers(parent))
    assert resp.status_code == 200
    assert resp.json()["data"]["notification"]["isRead"] is True

    unread = client.get("/api/notifications", params={"unread": "true"}, headers=auth_headers(parent))
    assert unread.json()["data"]["notifications"] == []


def test_preferences_update_keeps_protected_flags(client) -> None:
    parent = make_user()
    resp = client.patch(
        "/api/users/me/preferences",
        json={"preferences": {"theme": "dark", "onboardingCompleted": True}, "timezone": "Europe/Madrid"},
        headers=auth_headers(parent),
    )
    assert resp.status_code == 200
    user = resp.json()["data"]["user"]
    assert user["preferences"] == {"theme": "dark"}
    assert user["timezone"] == "Europe/Madrid"
    assert count_rows("audit_logs", "action = 'USER_PREFERENCES_UPDATE'") == 1
