from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import Field

from ..auth import AuthContext, can_access_family, client_ip, get_auth_context, load_accessible_child
from ..db import get_connection, transaction
from ..errors import ForbiddenError
from ..repositories import activities as activity_repo
from ..repositories import assessments as assessment_repo
from ..repositories import audit as audit_repo
from ..repositories import children as child_repo
from ..repositories import milestones as milestone_repo
from ..repositories import plans as plan_repo
from ..schemas import ApiModel, Gender, PlanStatus, envelope

router = APIRouter(prefix="/api/children", tags=["children"])

_NULLABLE_FIELDS = {"family_id", "notes", "health_notes"}


class ChildCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=120)
    date_of_birth: date
    gender: Optional[Gender] = None
    family_id: Optional[str] = None
    interests: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class ChildUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    family_id: Optional[str] = None
    interests: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    medications: Optional[List[str]] = None
    challenges: Optional[List[str]] = None
    notes: Optional[str] = None
    health_notes: Optional[str] = None


@router.get("")
async def list_children_endpoint(auth: AuthContext = Depends(get_auth_context)) -> dict:
    with get_connection() as conn:
        children = child_repo.list_children_for_parent(conn, auth.user_id)
    return envelope({"children": children})


@router.post("", status_code=201)
async def create_child_endpoint(
    payload: ChildCreate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    if payload.family_id and not can_access_family(auth, payload.family_id):
        raise ForbiddenError("Family access denied")
    with transaction() as conn:
        child = child_repo.create_child(
            conn,
            parent_id=auth.user_id,
            name=payload.name,
            date_of_birth=payload.date_of_birth,
            family_id=payload.family_id,
            gender=payload.gender,
            interests=payload.interests,
            allergies=payload.allergies,
            medications=payload.medications,
            notes=payload.notes,
        )
        audit_repo.record(
            conn,
            user_id=auth.user_id,
            action="CHILD_CREATE",
            resource="Child",
            resource_id=child.id,
            new_values={"name": child.name, "familyId": child.family_id},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return envelope({"child": child}, message="Child profile created")


@router.get("/{child_id}")
async def get_child_endpoint(child_id: str, auth: AuthContext = Depends(get_auth_context)) -> dict:
    with get_connection() as conn:
        child = load_accessible_child(conn, auth, child_id)
        milestones = milestone_repo.list_milestones(conn, child.id)
        recent_logs = activity_repo.list_logs_for_child(conn, child.id, limit=10)
        active_plans = plan_repo.list_plans_for_child(
            conn,
            parent_id=child.parent_id,
            child_id=child.id,
            status=PlanStatus.ACTIVE,
        )
        assessments = assessment_repo.list_assessments_for_child(conn, child.id)
    return envelope(
        {
            "child": child,
            "milestones": milestones,
            "recentActivityLogs": recent_logs,
            "activePlans": active_plans,
            "assessments": assessments,
        }
    )


@router.patch("/{child_id}")
async def update_child_endpoint(
    child_id: str,
    payload: ChildUpdate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in _NULLABLE_FIELDS
    }
    if changes.get("family_id") and not can_access_family(auth, changes["family_id"]):
        raise ForbiddenError("Family access denied")
    with transaction() as conn:
        child = load_accessible_child(conn, auth, child_id)
        updated = child_repo.save_child(conn, child.model_copy(update=changes))
        audit_repo.record(
            conn,
            user_id=auth.user_id,
            action="CHILD_UPDATE",
            resource="Child",
            resource_id=child.id,
            old_values=child.model_dump(mode="json", by_alias=True, include=set(changes)),
            new_values=updated.model_dump(mode="json", by_alias=True, include=set(changes)),
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return envelope({"child": updated}, message="Child profile updated")


@router.get("/{child_id}/activity-logs")
async def list_activity_logs_endpoint(
    child_id: str,
    limit: int = Query(50, ge=1, le=200),
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with get_connection() as conn:
        child = load_accessible_child(conn, auth, child_id)
        logs = activity_repo.list_logs_for_child(conn, child.id, limit=limit)
    return envelope({"logs": logs})
