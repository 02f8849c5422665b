"""AI-assisted plans, activity ideas and assessments.

Handlers are plain ``def`` functions: the completion call blocks, so FastAPI
runs them in its threadpool.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import Field

from ..auth import AuthContext, client_ip, get_auth_context, require_tier
from ..db import get_connection, now_iso, transaction
from ..errors import InvalidRequestError, NotFoundError
from ..openai_client import CompletionClient, get_completion_client
from ..planner import (
    ACTIVITY_SYSTEM_PROMPT,
    ASSESSMENT_SYSTEM_PROMPT,
    activity_recommendations_schema,
    assessment_schema,
    build_activity_prompt,
    build_assessment_prompt,
    build_parenting_plan_prompt,
    child_age_in_months,
    format_age,
    parenting_plan_schema,
    parse_activity_recommendations,
    parse_assessment,
    parse_parenting_plan,
)
from ..repositories import assessments as assessment_repo
from ..repositories import audit as audit_repo
from ..repositories import children as child_repo
from ..repositories import plans as plan_repo
from ..schemas import ActivityDifficulty, ActivityType, ApiModel, Child, SubscriptionTier, envelope

router = APIRouter(prefix="/api/ai", tags=["ai"])
logger = logging.getLogger(__name__)


class ParentingPlanRequest(ApiModel):
    child_id: str = Field(..., min_length=1)
    parenting_goals: List[str] = Field(..., min_length=1)
    challenges: List[str] = Field(default_factory=list)
    family_context: Optional[str] = None
    timeline: Literal["1_month", "3_months", "6_months"] = "3_months"


class ActivityRecommendationRequest(ApiModel):
    child_id: str = Field(..., min_length=1)
    skill_focus: List[str] = Field(..., min_length=1)
    duration: int = Field(default=30, gt=0, le=240)
    difficulty: ActivityDifficulty = ActivityDifficulty.MEDIUM
    activity_type: Optional[ActivityType] = None


class AssessmentRequest(ApiModel):
    child_id: str = Field(..., min_length=1)
    title: str = Field(default="Developmental assessment", min_length=1)
    assessment_type: str = Field(default="developmental", min_length=1)
    assessment_data: Dict[str, Any] = Field(default_factory=dict)
    parent_observations: List[str] = Field(..., min_length=1)
    concerns: Optional[List[str]] = None


def _owned_child(child_id: str, parent_id: str) -> Child:
    # AI features only run for the caller's own children, admins included.
    with get_connection() as conn:
        child = child_repo.get_owned_child(conn, child_id, parent_id)
    if child is None:
        raise NotFoundError("Child not found or access denied")
    return child


@router.post("/parenting-plan")
def generate_parenting_plan_endpoint(
    payload: ParentingPlanRequest,
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
    completion_client: CompletionClient = Depends(get_completion_client),
) -> dict:
    child = _owned_child(payload.child_id, auth.user_id)
    age_months = child_age_in_months(child.date_of_birth)

    prompt = build_parenting_plan_prompt(
        child,
        age_months,
        parenting_goals=payload.parenting_goals,
        challenges=payload.challenges,
        family_context=payload.family_context,
        timeline=payload.timeline,
    )
    draft = parse_parenting_plan(
        completion_client.generate(prompt, json_schema=parenting_plan_schema(), temperature=0.7, max_tokens=2000)
    )

    with transaction() as conn:
        plan = plan_repo.create_plan(
            conn,
            parent_id=child.parent_id,
            child_id=child.id,
            family_id=child.family_id,
            title=draft.title,
            description=draft.description,
            goals=draft.goals.model_dump(),
            strategies=draft.strategies.model_dump(),
            timeline=draft.timeline,
            tags=[plan_repo.AI_GENERATED_TAG, "personalized", payload.timeline],
            ai_prompts={
                "input": payload.model_dump(by_alias=True),
                "childProfile": {"name": child.name, "age": age_months, "interests": child.interests},
                "generatedAt": now_iso(),
            },
        )
        audit_repo.record(
            conn,
            user_id=child.parent_id,
            action="AI_PLAN_GENERATE",
            resource="ParentingPlan",
            resource_id=plan.id,
            new_values={"childId": child.id, "goals": payload.parenting_goals, "aiGenerated": True},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )

    logger.info("parenting plan generated", extra={"plan_id": plan.id, "child_id": child.id})
    return envelope(
        {
            "plan": plan,
            "aiInsights": {
                "activities": draft.activities,
                "tips": draft.tips,
                "personalizedFor": child.name,
                "ageAppropriate": format_age(age_months),
            },
        },
        message="AI parenting plan generated successfully",
    )


@router.get("/parenting-plan")
def list_generated_plans_endpoint(
    child_id: Optional[str] = Query(None, alias="childId"),
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    if not child_id:
        raise InvalidRequestError("Child ID is required")
    with get_connection() as conn:
        plans = plan_repo.list_plans_for_child(
            conn,
            parent_id=auth.user_id,
            child_id=child_id,
            tag=plan_repo.AI_GENERATED_TAG,
            limit=10,
        )
        child = child_repo.get_owned_child(conn, child_id, auth.user_id)
    child_name = child.name if child else None
    return envelope(
        {
            "plans": [
                {
                    "id": plan.id,
                    "title": plan.title,
                    "description": plan.description,
                    "status": plan.status,
                    "progress": plan.progress,
                    "createdAt": plan.created_at,
                    "childName": child_name,
                    "tags": plan.tags,
                }
                for plan in plans
            ]
        }
    )


@router.post("/activities")
def recommend_activities_endpoint(
    payload: ActivityRecommendationRequest,
    request: Request,
    auth: AuthContext = Depends(require_tier(SubscriptionTier.PREMIUM)),
    completion_client: CompletionClient = Depends(get_completion_client),
) -> dict:
    child = _owned_child(payload.child_id, auth.user_id)
    age_months = child_age_in_months(child.date_of_birth)
    prompt = build_activity_prompt(
        child,
        age_months,
        skill_focus=payload.skill_focus,
        duration=payload.duration,
        difficulty=payload.difficulty,
        activity_type=payload.activity_type,
    )
    recommendations = parse_activity_recommendations(
        completion_client.generate(
            prompt,
            system_prompt=ACTIVITY_SYSTEM_PROMPT,
            json_schema=activity_recommendations_schema(),
            temperature=0.8,
            max_tokens=1500,
        )
    )

    with transaction() as conn:
        audit_repo.record(
            conn,
            user_id=auth.user_id,
            action="AI_ACTIVITY_RECOMMEND",
            resource="Child",
            resource_id=child.id,
            new_values={"skillFocus": payload.skill_focus, "count": len(recommendations)},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )

    return envelope(
        {
            "activities": recommendations,
            "personalizedFor": child.name,
            "ageAppropriate": format_age(age_months),
        },
        message="Activity recommendations generated successfully",
    )


@router.post("/assessment")
def analyze_assessment_endpoint(
    payload: AssessmentRequest,
    request: Request,
    auth: AuthContext = Depends(require_tier(SubscriptionTier.PREMIUM_PLUS)),
    completion_client: CompletionClient = Depends(get_completion_client),
) -> dict:
    child = _owned_child(payload.child_id, auth.user_id)
    age_months = child_age_in_months(child.date_of_birth)
    prompt = build_assessment_prompt(
        child,
        age_months,
        assessment_data=payload.assessment_data,
        parent_observations=payload.parent_observations,
        concerns=payload.concerns,
    )
    analysis = parse_assessment(
        completion_client.generate(
            prompt,
            system_prompt=ASSESSMENT_SYSTEM_PROMPT,
            json_schema=assessment_schema(),
            temperature=0.6,
            max_tokens=1200,
        )
    )
    result = analysis.model_dump(by_alias=True)

    with transaction() as conn:
        assessment = assessment_repo.create_assessment(
            conn,
            child_id=child.id,
            user_id=auth.user_id,
            title=payload.title,
            assessment_type=payload.assessment_type,
            questions={
                "assessmentData": payload.assessment_data,
                "parentObservations": payload.parent_observations,
                "concerns": payload.concerns or [],
            },
            scores={
                "overallScore": result["overallScore"],
                "milestoneProgress": result["milestoneProgress"],
            },
            insights={
                "strengths": result["strengths"],
                "areasForGrowth": result["areasForGrowth"],
                "recommendations": result["recommendations"],
                "nextSteps": result["nextSteps"],
            },
        )
        audit_repo.record(
            conn,
            user_id=auth.user_id,
            action="AI_ASSESSMENT",
            resource="ChildAssessment",
            resource_id=assessment.id,
            new_values={"childId": child.id, "overallScore": result["overallScore"]},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )

    logger.info("assessment analyzed", extra={"assessment_id": assessment.id, "child_id": child.id})
    return envelope(
        {"assessment": assessment, "analysis": result},
        message="Assessment analyzed successfully",
    )
