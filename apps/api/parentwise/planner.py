"""Prompt construction and structured-output parsing for the AI features."""
from __future__ import annotations

import json
import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import Field, ValidationError, field_validator

from .errors import AIServiceError
from .schemas import ActivityDifficulty, ActivityType, ApiModel, Child

logger = logging.getLogger(__name__)

AVERAGE_MONTH_DAYS = 30.44
SECONDS_PER_DAY = 86400

PLAN_TIMELINES = {
    "1_month": "1 month",
    "3_months": "3 months",
    "6_months": "6 months",
}

ACTIVITY_SYSTEM_PROMPT = (
    "You are an expert in child development and educational activities. You create engaging, safe, "
    "and developmentally appropriate activities that children love and parents can easily implement."
)
ASSESSMENT_SYSTEM_PROMPT = (
    "You are a compassionate child development expert who provides encouraging, evidence-based "
    "assessments that help parents understand their child's unique development journey."
)


def _as_utc_datetime(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def child_age_in_months(date_of_birth: Union[date, datetime], now: Optional[datetime] = None) -> int:
    """Whole months since birth using a 30.44-day month.

    On a monthly birthday (same day of month, at or past the birth time) the
    calendar month count wins, so exactly N calendar months ago yields N even
    where the average-month division falls just short.
    """

    born = _as_utc_datetime(date_of_birth)
    current = _as_utc_datetime(now) if now is not None else datetime.now(tz=timezone.utc)
    elapsed_days = (current - born).total_seconds() / SECONDS_PER_DAY
    # Rounded first so a 24 * 30.44-day span is not floored to 23 by float error.
    by_average = math.floor(round(elapsed_days / AVERAGE_MONTH_DAYS, 9))

    if current.day == born.day and current.time() >= born.time():
        calendar = (current.year - born.year) * 12 + (current.month - born.month)
        return max(by_average, calendar, 0)
    return max(by_average, 0)


def format_age(age_months: int) -> str:
    return f"{age_months // 12} years {age_months % 12} months"


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _joined(items: List[str]) -> str:
    return ", ".join(items) if items else "none noted"


# Parenting plans ---------------------------------------------------------


class PlanGoals(ApiModel):
    primary: str
    secondary: List[str] = Field(default_factory=list)
    timeline: str


class PlanStrategies(ApiModel):
    daily: List[str] = Field(default_factory=list)
    weekly: List[str] = Field(default_factory=list)
    monthly: List[str] = Field(default_factory=list)


class ParentingPlanDraft(ApiModel):
    title: str = Field(..., min_length=1)
    description: str
    goals: PlanGoals
    strategies: PlanStrategies
    timeline: Dict[str, str] = Field(default_factory=dict)
    activities: List[str] = Field(default_factory=list)
    tips: List[str] = Field(default_factory=list)

    @field_validator("timeline", mode="before")
    @classmethod
    def _timeline_entries(cls, value: Any) -> Any:
        # The model returns ordered {period, focus} pairs; stored as a mapping.
        if isinstance(value, list):
            return {str(entry.get("period")): str(entry.get("focus")) for entry in value if isinstance(entry, dict)}
        return value


def _string_array() -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}}


def parenting_plan_schema() -> Dict[str, Any]:
    return {
        "name": "parenting_plan",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "description": {"type": "string"},
                "goals": {
                    "type": "object",
                    "properties": {
                        "primary": {"type": "string"},
                        "secondary": _string_array(),
                        "timeline": {"type": "string"},
                    },
                    "required": ["primary", "secondary", "timeline"],
                    "additionalProperties": False,
                },
                "strategies": {
                    "type": "object",
                    "properties": {
                        "daily": _string_array(),
                        "weekly": _string_array(),
                        "monthly": _string_array(),
                    },
                    "required": ["daily", "weekly", "monthly"],
                    "additionalProperties": False,
                },
                "timeline": {
                    "type": "array",
                    "description": "Week-by-week focus for the first month, e.g. period 'week1'.",
                    "items": {
                        "type": "object",
                        "properties": {
                            "period": {"type": "string"},
                            "focus": {"type": "string"},
                        },
                        "required": ["period", "focus"],
                        "additionalProperties": False,
                    },
                },
                "activities": _string_array(),
                "tips": _string_array(),
            },
            "required": ["title", "description", "goals", "strategies", "timeline", "activities", "tips"],
            "additionalProperties": False,
        },
    }


def build_parenting_plan_prompt(
    child: Child,
    age_months: int,
    *,
    parenting_goals: List[str],
    challenges: List[str],
    family_context: Optional[str] = None,
    timeline: str = "3_months",
) -> str:
    lines = [
        "As an expert child development specialist and parenting coach, create a comprehensive, "
        "personalized parenting plan for a child with the following profile:",
        "",
        "Child Profile:",
        f"- Name: {child.name}",
        f"- Age: {format_age(age_months)} ({age_months} months total)",
        f"- Interests: {_joined(child.interests)}",
        f"- Current challenges: {_joined(challenges)}",
        f"- Parenting goals: {_joined(parenting_goals)}",
    ]
    if family_context:
        lines.append(f"- Family context: {family_context}")
    lines.extend(
        [
            f"- Plan length: {PLAN_TIMELINES.get(timeline, timeline)}",
            "",
            "Please provide a structured parenting plan that includes:",
            "1. A compelling title and description",
            "2. Clear primary and secondary goals with realistic timeline",
            "3. Specific strategies organized by frequency (daily, weekly, monthly)",
            "4. Week-by-week timeline for the first month",
            "5. Recommended activities that align with the child's interests",
            "6. Evidence-based parenting tips",
            "",
            "Focus on age-appropriate developmental milestones, the child's existing interests, "
            "the specific challenges mentioned, and positive parenting approaches that build emotional connection.",
        ]
    )
    return "\n".join(lines)


# Activity recommendations -----------------------------------------------


class ActivityRecommendation(ApiModel):
    title: str
    description: str
    instructions: List[str] = Field(default_factory=list)
    age_range_min: int = Field(..., ge=0)
    age_range_max: int = Field(..., ge=0)
    duration: int = Field(..., gt=0)
    difficulty: ActivityDifficulty
    type: ActivityType
    materials: List[str] = Field(default_factory=list)
    learning_outcomes: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    safety_tips: List[str] = Field(default_factory=list)


class ActivityRecommendations(ApiModel):
    activities: List[ActivityRecommendation]


def activity_recommendations_schema() -> Dict[str, Any]:
    item_properties = {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "instructions": _string_array(),
        "ageRangeMin": {"type": "integer"},
        "ageRangeMax": {"type": "integer"},
        "duration": {"type": "integer"},
        "difficulty": {"type": "string", "enum": [value.value for value in ActivityDifficulty]},
        "type": {"type": "string", "enum": [value.value for value in ActivityType]},
        "materials": _string_array(),
        "learningOutcomes": _string_array(),
        "skills": _string_array(),
        "safetyTips": _string_array(),
    }
    return {
        "name": "activity_recommendations",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "activities": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": item_properties,
                        "required": list(item_properties),
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["activities"],
            "additionalProperties": False,
        },
    }


def build_activity_prompt(
    child: Child,
    age_months: int,
    *,
    skill_focus: List[str],
    duration: int,
    difficulty: ActivityDifficulty,
    activity_type: Optional[ActivityType] = None,
) -> str:
    lines = [
        "As a child development expert, suggest 3 engaging activities for a child with this profile:",
        "",
        "Child Profile:",
        f"- Age: {format_age(age_months)}",
        f"- Interests: {_joined(child.interests)}",
        f"- Skills to develop: {_joined(skill_focus)}",
        f"- Available time: {duration} minutes",
        f"- Difficulty level: {difficulty.value.lower()}",
    ]
    if activity_type is not None:
        lines.append(f"- Activity type preference: {activity_type.value}")
    lines.extend(
        [
            "",
            "For each activity, provide an engaging title and description, step-by-step instructions, "
            "required materials (easily available), learning outcomes and skills developed, and safety considerations.",
            "Activities must be age-appropriate, safe and completable in the given timeframe.",
        ]
    )
    return "\n".join(lines)


# Assessments -------------------------------------------------------------


class MilestoneProgress(ApiModel):
    physical: int = Field(..., ge=0, le=100)
    cognitive: int = Field(..., ge=0, le=100)
    language: int = Field(..., ge=0, le=100)
    social_emotional: int = Field(..., ge=0, le=100)
    adaptive: int = Field(..., ge=0, le=100)


class AssessmentAnalysis(ApiModel):
    overall_score: float = Field(..., ge=1, le=10)
    strengths: List[str] = Field(default_factory=list)
    areas_for_growth: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    milestone_progress: MilestoneProgress
    next_steps: List[str] = Field(default_factory=list)


def assessment_schema() -> Dict[str, Any]:
    progress_keys = ["physical", "cognitive", "language", "socialEmotional", "adaptive"]
    return {
        "name": "child_assessment",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "overallScore": {"type": "number"},
                "strengths": _string_array(),
                "areasForGrowth": _string_array(),
                "recommendations": _string_array(),
                "milestoneProgress": {
                    "type": "object",
                    "properties": {key: {"type": "integer"} for key in progress_keys},
                    "required": progress_keys,
                    "additionalProperties": False,
                },
                "nextSteps": _string_array(),
            },
            "required": [
                "overallScore",
                "strengths",
                "areasForGrowth",
                "recommendations",
                "milestoneProgress",
                "nextSteps",
            ],
            "additionalProperties": False,
        },
    }


def build_assessment_prompt(
    child: Child,
    age_months: int,
    *,
    assessment_data: Dict[str, Any],
    parent_observations: List[str],
    concerns: Optional[List[str]] = None,
) -> str:
    sections = [
        "As a child development specialist, analyze this assessment data and provide insights:",
        "",
        f"Child: {child.name}, Age: {format_age(age_months)}",
        "",
        f"Assessment Data: {json.dumps(assessment_data, ensure_ascii=False, indent=2)}",
        "",
        "Parent Observations:",
        _bullets(parent_observations),
    ]
    if concerns:
        sections.extend(["", "Parent Concerns:", _bullets(concerns)])
    sections.extend(
        [
            "",
            "Please provide an overall developmental assessment score (1-10), key strengths to celebrate, "
            "areas for growth, specific recommendations, milestone progress in each domain (0-100), "
            "and next steps for continued development.",
        ]
    )
    return "\n".join(sections)


# Parsing -----------------------------------------------------------------


def _load_json(raw: str, *, kind: str) -> Any:
    content = raw.strip()
    if content.startswith("```"):
        content = content.strip("`")
        if content.lower().startswith("json"):
            content = content[4:]
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        logger.warning("unparseable completion", extra={"kind": kind, "length": len(raw)})
        raise AIServiceError() from exc


def parse_parenting_plan(raw: str) -> ParentingPlanDraft:
    payload = _load_json(raw, kind="parenting_plan")
    try:
        return ParentingPlanDraft.model_validate(payload)
    except ValidationError as exc:
        logger.warning("completion did not match plan shape", extra={"errors": exc.error_count()})
        raise AIServiceError() from exc


def parse_activity_recommendations(raw: str) -> List[ActivityRecommendation]:
    payload = _load_json(raw, kind="activities")
    try:
        return ActivityRecommendations.model_validate(payload).activities
    except ValidationError as exc:
        logger.warning("completion did not match activity shape", extra={"errors": exc.error_count()})
        raise AIServiceError() from exc


def parse_assessment(raw: str) -> AssessmentAnalysis:
    payload = _load_json(raw, kind="assessment")
    try:
        return AssessmentAnalysis.model_validate(payload)
    except ValidationError as exc:
        logger.warning("completion did not match assessment shape", extra={"errors": exc.error_count()})
        raise AIServiceError() from exc
