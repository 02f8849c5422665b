from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import Field

from ..auth import AuthContext, can_access_family, client_ip, get_auth_context
from ..db import get_connection, transaction
from ..errors import ForbiddenError, NotFoundError
from ..repositories import audit as audit_repo
from ..repositories import children as child_repo
from ..repositories import families as family_repo
from ..schemas import ApiModel, envelope

router = APIRouter(prefix="/api/families", tags=["families"])
logger = logging.getLogger(__name__)


class FamilyCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    share_progress: bool = False


class FamilyJoin(ApiModel):
    family_code: str = Field(..., min_length=1)


@router.post("", status_code=201)
async def create_family_endpoint(
    payload: FamilyCreate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with transaction() as conn:
        family = family_repo.create_family(
            conn,
            name=payload.name,
            description=payload.description,
            settings={"shareProgress": payload.share_progress},
        )
        member = family_repo.add_member(conn, family_id=family.id, user_id=auth.user_id, is_owner=True)
        audit_repo.record(
            conn,
            user_id=auth.user_id,
            action="FAMILY_CREATE",
            resource="Family",
            resource_id=family.id,
            new_values={"name": family.name},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    logger.info("family created", extra={"family_id": family.id})
    return envelope({"family": family, "membership": member}, message="Family created")


@router.post("/join")
async def join_family_endpoint(
    payload: FamilyJoin,
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with transaction() as conn:
        family = family_repo.get_family_by_code(conn, payload.family_code)
        if family is None:
            raise NotFoundError("Family code not found")
        member = family_repo.add_member(conn, family_id=family.id, user_id=auth.user_id, is_owner=False)
        audit_repo.record(
            conn,
            user_id=auth.user_id,
            action="FAMILY_JOIN",
            resource="Family",
            resource_id=family.id,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return envelope({"family": family, "membership": member}, message="Joined family")


@router.get("/{family_id}")
async def get_family_endpoint(family_id: str, auth: AuthContext = Depends(get_auth_context)) -> dict:
    with get_connection() as conn:
        family = family_repo.get_family(conn, family_id)
        if family is None:
            raise NotFoundError("Family not found")
        if not can_access_family(auth, family.id):
            raise ForbiddenError("Family access denied")
        members = family_repo.list_member_profiles(conn, family.id)
        children = child_repo.list_children_for_family(conn, family.id)
    return envelope({"family": family, "members": members, "children": children})
