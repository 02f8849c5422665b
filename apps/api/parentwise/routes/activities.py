from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import Field, model_validator

from ..auth import AuthContext, client_ip, get_auth_context, load_accessible_child, require_role
from ..db import get_connection, transaction
from ..errors import NotFoundError
from ..planner import child_age_in_months
from ..repositories import activities as activity_repo
from ..repositories import audit as audit_repo
from ..schemas import ActivityDifficulty, ActivityType, ApiModel, UserRole, envelope

router = APIRouter(prefix="/api/activities", tags=["activities"])


class ActivityCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    instructions: str = Field(..., min_length=1)
    age_range_min: int = Field(..., ge=0)
    age_range_max: int = Field(..., ge=0)
    duration: int = Field(..., gt=0)
    difficulty: ActivityDifficulty
    type: ActivityType
    materials: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    is_premium: bool = False

    @model_validator(mode="after")
    def _ordered_range(self) -> "ActivityCreate":
        if self.age_range_min > self.age_range_max:
            raise ValueError("ageRangeMin must not exceed ageRangeMax")
        return self


class ActivityLogCreate(ApiModel):
    child_id: str = Field(..., min_length=1)
    duration: Optional[int] = Field(default=None, gt=0)
    enjoyment: Optional[int] = Field(default=None, ge=1, le=5)
    difficulty: Optional[int] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = None
    observations: Optional[str] = None
    skills: List[str] = Field(default_factory=list)


@router.get("")
async def list_activities_endpoint(
    child_id: Optional[str] = Query(None, alias="childId"),
    type: Optional[ActivityType] = Query(None),
    difficulty: Optional[ActivityDifficulty] = Query(None),
    duration: Optional[int] = Query(None, gt=0),
    is_premium: Optional[bool] = Query(None, alias="isPremium"),
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with get_connection() as conn:
        age_months = None
        if child_id:
            child = load_accessible_child(conn, auth, child_id)
            age_months = child_age_in_months(child.date_of_birth)
        activities = activity_repo.list_activities(
            conn,
            child_age_months=age_months,
            type=type,
            difficulty=difficulty,
            max_duration=duration,
            is_premium=is_premium,
        )
    return envelope({"activities": activities, "childAgeMonths": age_months})


@router.post("", status_code=201)
async def create_activity_endpoint(
    payload: ActivityCreate,
    request: Request,
    auth: AuthContext = Depends(require_role(UserRole.ADMIN)),
) -> dict:
    with transaction() as conn:
        activity = activity_repo.create_activity(
            conn,
            title=payload.title,
            description=payload.description,
            instructions=payload.instructions,
            age_range_min=payload.age_range_min,
            age_range_max=payload.age_range_max,
            duration=payload.duration,
            difficulty=payload.difficulty,
            type=payload.type,
            materials=payload.materials,
            tags=payload.tags,
            is_premium=payload.is_premium,
        )
        audit_repo.record(
            conn,
            user_id=auth.user_id,
            action="ACTIVITY_CREATE",
            resource="Activity",
            resource_id=activity.id,
            new_values={"title": activity.title, "isPremium": activity.is_premium},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return envelope({"activity": activity}, message="Activity created")


@router.post("/{activity_id}/log", status_code=201)
async def log_activity_endpoint(
    activity_id: str,
    payload: ActivityLogCreate,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with transaction() as conn:
        activity = activity_repo.get_activity(conn, activity_id)
        if activity is None:
            raise NotFoundError("Activity not found")
        child = load_accessible_child(conn, auth, payload.child_id)
        log = activity_repo.log_activity(
            conn,
            activity_id=activity.id,
            child_id=child.id,
            user_id=auth.user_id,
            duration=payload.duration,
            enjoyment=payload.enjoyment,
            difficulty=payload.difficulty,
            notes=payload.notes,
            observations=payload.observations,
            skills=payload.skills,
        )
    return envelope({"log": log}, message="Activity logged")
