from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import Field

from ..auth import AuthContext, can_access_family, client_ip, get_auth_context, load_accessible_child
from ..db import get_connection, transaction
from ..errors import ForbiddenError, NotFoundError
from ..repositories import audit as audit_repo
from ..repositories import notifications as notification_repo
from ..repositories import plans as plan_repo
from ..schemas import ApiModel, NotificationType, PlanStatus, envelope

router = APIRouter(prefix="/api/plans", tags=["plans"])
logger = logging.getLogger(__name__)


class PlanCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    child_id: Optional[str] = None
    family_id: Optional[str] = None
    goals: Dict[str, Any] = Field(default_factory=dict)
    strategies: Dict[str, Any] = Field(default_factory=dict)
    timeline: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)


class ProgressUpdate(ApiModel):
    progress: int = Field(..., ge=0, le=100)


@router.get("")
async def list_plans_endpoint(
    status: Optional[PlanStatus] = Query(None),
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with get_connection() as conn:
        plans = plan_repo.list_plans_for_parent(conn, auth.user_id, status=status)
    return envelope({"plans": plans})


@router.post("", status_code=201)
async def create_plan_endpoint(
    payload: PlanCreate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    if payload.family_id and not can_access_family(auth, payload.family_id):
        raise ForbiddenError("Family access denied")
    with transaction() as conn:
        if payload.child_id:
            load_accessible_child(conn, auth, payload.child_id)
        plan = plan_repo.create_plan(
            conn,
            parent_id=auth.user_id,
            child_id=payload.child_id,
            family_id=payload.family_id,
            title=payload.title,
            description=payload.description,
            goals=payload.goals,
            strategies=payload.strategies,
            timeline=payload.timeline,
            tags=payload.tags,
        )
        audit_repo.record(
            conn,
            user_id=auth.user_id,
            action="PLAN_CREATE",
            resource="ParentingPlan",
            resource_id=plan.id,
            new_values={"title": plan.title, "childId": plan.child_id},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return envelope({"plan": plan}, message="Parenting plan created")


@router.patch("/{plan_id}/progress")
async def update_progress_endpoint(
    plan_id: str,
    payload: ProgressUpdate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with transaction() as conn:
        plan = plan_repo.get_plan(conn, plan_id)
        if plan is None or not (auth.is_admin or plan.parent_id == auth.user_id):
            raise NotFoundError("Plan not found")
        updated = plan_repo.update_plan_progress(conn, plan, payload.progress)
        audit_repo.record(
            conn,
            user_id=auth.user_id,
            action="PLAN_PROGRESS_UPDATE",
            resource="ParentingPlan",
            resource_id=plan.id,
            old_values={"progress": plan.progress, "status": plan.status.value},
            new_values={"progress": updated.progress, "status": updated.status.value},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        if updated.status == PlanStatus.COMPLETED and plan.status != PlanStatus.COMPLETED:
            notification_repo.create_notification(
                conn,
                user_id=plan.parent_id,
                type=NotificationType.PLAN_UPDATE,
                title="Plan completed",
                message=f"Congratulations! You completed \"{plan.title}\".",
                data={"planId": plan.id},
            )
            logger.info("plan completed", extra={"plan_id": plan.id})
    return envelope({"plan": updated}, message="Progress updated")
