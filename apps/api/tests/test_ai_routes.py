from __future__ import annotations

import json
from typing import Any, List

import pytest
from api_helpers import PLAN_OUTPUT, auth_headers, count_rows, make_child, make_user

from parentwise.db import get_connection
from parentwise.errors import AIServiceError
from parentwise.main import app
from parentwise.openai_client import get_completion_client
from parentwise.schemas import SubscriptionTier


class FakeCompletionClient:
    def __init__(self, output: str = "", error: Exception | None = None) -> None:
        self.output = output
        self.error = error
        self.prompts: List[str] = []

    def generate(self, prompt: str, **kwargs: Any) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.output


@pytest.fixture
def fake_ai() -> FakeCompletionClient:
    fake = FakeCompletionClient(json.dumps(PLAN_OUTPUT))
    app.dependency_overrides[get_completion_client] = lambda: fake
    return fake


def test_generate_plan_persists_draft_and_audit(client, fake_ai) -> None:
    parent = make_user()
    child = make_child(parent)
    resp = client.post(
        "/api/ai/parenting-plan",
        json={"childId": child.id, "parentingGoals": ["Smoother mornings"], "timeline": "1_month"},
        headers=auth_headers(parent),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "AI parenting plan generated successfully"
    plan = body["data"]["plan"]
    assert plan["title"] == "Calm Mornings for Leo"
    assert plan["status"] == "DRAFT"
    assert plan["progress"] == 0
    assert plan["tags"] == ["ai-generated", "personalized", "1_month"]
    assert plan["timeline"] == {"week1": "Establish routines", "week2": "Build on interests"}
    assert plan["aiPrompts"]["childProfile"]["name"] == "Leo"

    insights = body["data"]["aiInsights"]
    assert insights["personalizedFor"] == "Leo"
    assert insights["tips"] == ["Stay consistent"]
    assert insights["ageAppropriate"].endswith("months")

    assert "- Name: Leo" in fake_ai.prompts[0]
    assert count_rows("audit_logs", "action = ?", ("AI_PLAN_GENERATE",)) == 1


def test_plan_for_another_users_child_is_not_found(client, fake_ai) -> None:
    owner = make_user("owner@example.com")
    child = make_child(owner)
    intruder = make_user("intruder@example.com")
    resp = client.post(
        "/api/ai/parenting-plan",
        json={"childId": child.id, "parentingGoals": ["Anything"]},
        headers=auth_headers(intruder),
    )
    assert resp.status_code == 404
    assert resp.json() == {"error": "Child not found or access denied"}
    assert fake_ai.prompts == []
    assert count_rows("parenting_plans") == 0


def test_plan_request_validation(client, fake_ai) -> None:
    parent = make_user()
    child = make_child(parent)
    resp = client.post(
        "/api/ai/parenting-plan",
        json={"childId": child.id, "parentingGoals": []},
        headers=auth_headers(parent),
    )
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "parentingGoals"

    bad_timeline = client.post(
        "/api/ai/parenting-plan",
        json={"childId": child.id, "parentingGoals": ["x"], "timeline": "2_years"},
        headers=auth_headers(parent),
    )
    assert bad_timeline.status_code == 400


def test_missing_api_key_is_service_unavailable(client) -> None:
    parent = make_user()
    child = make_child(parent)
    resp = client.post(
        "/api/ai/parenting-plan",
        json={"childId": child.id, "parentingGoals": ["Sleep"]},
        headers=auth_headers(parent),
    )
    assert resp.status_code == 503
    assert count_rows("parenting_plans") == 0


def test_upstream_failure_and_garbage_output_are_503(client) -> None:
    parent = make_user()
    child = make_child(parent)
    payload = {"childId": child.id, "parentingGoals": ["Sleep"]}

    app.dependency_overrides[get_completion_client] = lambda: FakeCompletionClient(error=AIServiceError())
    failed = client.post("/api/ai/parenting-plan", json=payload, headers=auth_headers(parent))
    assert failed.status_code == 503
    assert failed.json() == {"error": "AI service temporarily unavailable. Please try again later."}

    app.dependency_overrides[get_completion_client] = lambda: FakeCompletionClient("Sure! Here's a plan...")
    garbage = client.post("/api/ai/parenting-plan", json=payload, headers=auth_headers(parent))
    assert garbage.status_code == 503
    assert count_rows("parenting_plans") == 0


def test_list_generated_plans(client, fake_ai) -> None:
    parent = make_user()
    child = make_child(parent)
    headers = auth_headers(parent)
    client.post("/api/ai/parenting-plan", json={"childId": child.id, "parentingGoals": ["a"]}, headers=headers)
    client.post("/api/plans", json={"title": "Manual plan", "childId": child.id}, headers=headers)

    resp = client.get("/api/ai/parenting-plan", params={"childId": child.id}, headers=headers)
    assert resp.status_code == 200
    plans = resp.json()["data"]["plans"]
    assert len(plans) == 1
    assert plans[0]["childName"] == "Leo"
    assert "ai-generated" in plans[0]["tags"]

    missing = client.get("/api/ai/parenting-plan", headers=headers)
    assert missing.status_code == 400
    assert missing.json() == {"error": "Child ID is required"}


def test_activity_recommendations_require_premium(client) -> None:
    free_parent = make_user()
    child = make_child(free_parent)
    resp = client.post(
        "/api/ai/activities",
        json={"childId": child.id, "skillFocus": ["fine motor"]},
        headers=auth_headers(free_parent),
    )
    assert resp.status_code == 402


def test_activity_recommendations_for_premium_parent(client) -> None:
    parent = make_user(tier=SubscriptionTier.PREMIUM)
    child = make_child(parent)
    output = {
        "activities": [
            {
                "title": "Sock Sort",
                "description": "Match socks by colour.",
                "instructions": ["Pile socks", "Sort by colour"],
                "ageRangeMin": 18,
                "ageRangeMax": 36,
                "duration": 15,
                "difficulty": "EASY",
                "type": "COGNITIVE",
                "materials": ["Socks"],
                "learningOutcomes": ["Matching"],
                "skills": ["Sorting"],
                "safetyTips": ["Supervise"],
            }
        ]
    }
    app.dependency_overrides[get_completion_client] = lambda: FakeCompletionClient(json.dumps(output))
    resp = client.post(
        "/api/ai/activities",
        json={"childId": child.id, "skillFocus": ["sorting"], "duration": 15, "difficulty": "EASY"},
        headers=auth_headers(parent),
    )
    assert resp.status_code == 200
    activities = resp.json()["data"]["activities"]
    assert activities[0]["title"] == "Sock Sort"
    assert activities[0]["ageRangeMin"] == 18


def test_assessment_requires_premium_plus_and_persists(client) -> None:
    premium = make_user("premium@example.com", tier=SubscriptionTier.PREMIUM)
    child = make_child(premium)
    body = {"childId": child.id, "parentObservations": ["Stacks six blocks"]}
    assert client.post("/api/ai/assessment", json=body, headers=auth_headers(premium)).status_code == 402

    parent = make_user("plus@example.com", tier=SubscriptionTier.PREMIUM_PLUS)
    own_child = make_child(parent, name="Mia")
    output = {
        "overallScore": 8.5,
        "strengths": ["Curious learner"],
        "areasForGrowth": ["Attention span"],
        "recommendations": ["Read together daily"],
        "milestoneProgress": {"physical": 85, "cognitive": 90, "language": 80, "socialEmotional": 88, "adaptive": 82},
        "nextSteps": ["Schedule playdates"],
    }
    app.dependency_overrides[get_completion_client] = lambda: FakeCompletionClient(json.dumps(output))
    resp = client.post(
        "/api/ai/assessment",
        json={"childId": own_child.id, "parentObservations": ["Names colours"], "concerns": ["Short naps"]},
        headers=auth_headers(parent),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["analysis"]["overallScore"] == 8.5
    assert data["assessment"]["scores"]["milestoneProgress"]["cognitive"] == 90
    assert data["assessment"]["insights"]["strengths"] == ["Curious learner"]

    with get_connection() as conn:
        row = conn.execute("SELECT child_id, questions FROM child_assessments").fetchone()
    assert row["child_id"] == own_child.id
    assert json.loads(row["questions"])["concerns"] == ["Short naps"]
