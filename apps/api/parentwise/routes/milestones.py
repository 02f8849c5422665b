from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import Field, model_validator

from ..auth import AuthContext, client_ip, get_auth_context, load_accessible_child
from ..db import get_connection, transaction
from ..errors import NotFoundError
from ..repositories import audit as audit_repo
from ..repositories import milestones as milestone_repo
from ..schemas import ApiModel, MilestoneCategory, envelope

router = APIRouter(prefix="/api", tags=["milestones"])


class MilestoneCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: MilestoneCategory
    age_range_min: int = Field(..., ge=0)
    age_range_max: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _ordered_range(self) -> "MilestoneCreate":
        if self.age_range_min > self.age_range_max:
            raise ValueError("ageRangeMin must not exceed ageRangeMax")
        return self


class MilestoneCompletion(ApiModel):
    notes: Optional[str] = None
    evidence: List[str] = Field(default_factory=list)


@router.get("/children/{child_id}/milestones")
async def list_milestones_endpoint(
    child_id: str,
    completed: Optional[bool] = Query(None),
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with get_connection() as conn:
        child = load_accessible_child(conn, auth, child_id)
        milestones = milestone_repo.list_milestones(conn, child.id, completed=completed)
    return envelope({"milestones": milestones})


@router.post("/children/{child_id}/milestones", status_code=201)
async def create_milestone_endpoint(
    child_id: str,
    payload: MilestoneCreate,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with transaction() as conn:
        child = load_accessible_child(conn, auth, child_id)
        milestone = milestone_repo.create_milestone(
            conn,
            child_id=child.id,
            title=payload.title,
            description=payload.description,
            category=payload.category,
            age_range_min=payload.age_range_min,
            age_range_max=payload.age_range_max,
        )
    return envelope({"milestone": milestone}, message="Milestone created")


@router.post("/milestones/{milestone_id}/complete")
async def complete_milestone_endpoint(
    milestone_id: str,
    request: Request,
    payload: Optional[MilestoneCompletion] = None,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    payload = payload or MilestoneCompletion()
    with transaction() as conn:
        milestone = milestone_repo.get_milestone(conn, milestone_id)
        if milestone is None:
            raise NotFoundError("Milestone not found")
        load_accessible_child(conn, auth, milestone.child_id)
        completed = milestone_repo.complete_milestone(
            conn,
            milestone,
            notes=payload.notes,
            evidence=payload.evidence,
        )
        audit_repo.record(
            conn,
            user_id=auth.user_id,
            action="MILESTONE_COMPLETE",
            resource="Milestone",
            resource_id=milestone.id,
            old_values={"isCompleted": milestone.is_completed},
            new_values={"isCompleted": True, "childId": milestone.child_id},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return envelope({"milestone": completed}, message="Milestone completed")
