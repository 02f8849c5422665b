from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone

import pytest
from api_helpers import PLAN_OUTPUT

from parentwise.errors import AIServiceError
from parentwise.planner import (
    build_parenting_plan_prompt,
    child_age_in_months,
    format_age,
    parse_activity_recommendations,
    parse_assessment,
    parse_parenting_plan,
)
from parentwise.schemas import ActivityDifficulty, Child

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _child(**overrides) -> Child:
    data = {
        "id": "child-1",
        "parent_id": "user-1",
        "name": "Leo",
        "date_of_birth": date(2022, 6, 15),
        "interests": ["blocks", "music"],
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(overrides)
    return Child.model_validate(data)


def test_exact_calendar_months_count_as_whole_months() -> None:
    assert child_age_in_months(date(2022, 6, 15), now=NOW) == 24
    assert child_age_in_months(date(2022, 6, 16), now=NOW) == 23


def test_calendar_count_only_applies_on_monthly_birthdays() -> None:
    march_first = datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert child_age_in_months(date(2024, 1, 31), now=march_first) == 0
    assert child_age_in_months(date(2023, 2, 15), now=datetime(2023, 3, 15, tzinfo=timezone.utc)) == 1
    assert child_age_in_months(date(2023, 2, 16), now=datetime(2023, 3, 15, tzinfo=timezone.utc)) == 0


def test_average_month_length_boundary() -> None:
    born = NOW - timedelta(days=24 * 30.44)
    assert child_age_in_months(born, now=NOW) == 24
    assert child_age_in_months(NOW - timedelta(days=23 * 30.44 + 1), now=NOW) == 23


def test_newborn_and_future_dates_clamp_to_zero() -> None:
    assert child_age_in_months(date(2024, 6, 1), now=NOW) == 0
    assert child_age_in_months(date(2024, 7, 1), now=NOW) == 0


def test_format_age() -> None:
    assert format_age(24) == "2 years 0 months"
    assert format_age(31) == "2 years 7 months"
    assert format_age(5) == "0 years 5 months"


def test_plan_prompt_describes_child() -> None:
    prompt = build_parenting_plan_prompt(
        _child(),
        24,
        parenting_goals=["Better sleep"],
        challenges=["Tantrums"],
        family_context="Two working parents",
        timeline="6_months",
    )
    assert "- Name: Leo" in prompt
    assert "2 years 0 months (24 months total)" in prompt
    assert "blocks, music" in prompt
    assert "- Family context: Two working parents" in prompt
    assert "6 months" in prompt


def test_parse_plan_converts_timeline_entries() -> None:
    draft = parse_parenting_plan(json.dumps(PLAN_OUTPUT))
    assert draft.title == "Calm Mornings for Leo"
    assert draft.timeline == {"week1": "Establish routines", "week2": "Build on interests"}
    assert draft.goals.secondary == ["Less screen time"]


def test_parse_plan_accepts_fenced_json() -> None:
    draft = parse_parenting_plan("```json\n" + json.dumps(PLAN_OUTPUT) + "\n```")
    assert draft.tips == ["Stay consistent"]


@pytest.mark.parametrize("raw", ["Here is your plan: be patient.", json.dumps({"title": "Missing everything"})])
def test_unusable_plan_output_is_an_upstream_error(raw: str) -> None:
    with pytest.raises(AIServiceError):
        parse_parenting_plan(raw)


def test_parse_activity_recommendations() -> None:
    raw = json.dumps(
        {
            "activities": [
                {
                    "title": "Rhythm Shakers",
                    "description": "Make shakers from rice and bottles.",
                    "instructions": ["Fill bottles", "Seal", "Shake to music"],
                    "ageRangeMin": 18,
                    "ageRangeMax": 36,
                    "duration": 20,
                    "difficulty": "EASY",
                    "type": "CREATIVE",
                    "materials": ["Rice", "Bottles"],
                    "learningOutcomes": ["Rhythm"],
                    "skills": ["Fine motor"],
                    "safetyTips": ["Seal lids tightly"],
                }
            ]
        }
    )
    activities = parse_activity_recommendations(raw)
    assert len(activities) == 1
    assert activities[0].difficulty == ActivityDifficulty.EASY
    assert activities[0].safety_tips == ["Seal lids tightly"]


def test_parse_assessment_rejects_out_of_range_scores() -> None:
    payload = {
        "overallScore": 8,
        "strengths": ["Curious"],
        "areasForGrowth": ["Patience"],
        "recommendations": ["Read daily"],
        "milestoneProgress": {"physical": 80, "cognitive": 90, "language": 85, "socialEmotional": 70, "adaptive": 75},
        "nextSteps": ["Playdates"],
    }
    assert parse_assessment(json.dumps(payload)).milestone_progress.social_emotional == 70

    payload["milestoneProgress"]["language"] = 140
    with pytest.raises(AIServiceError):
        parse_assessment(json.dumps(payload))
