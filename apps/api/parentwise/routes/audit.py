from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import AuthContext, require_role
from ..db import get_connection
from ..repositories import audit as audit_repo
from ..schemas import UserRole, envelope

router = APIRouter(prefix="/api/audit-logs", tags=["audit"])


@router.get("")
async def list_audit_logs_endpoint(
    user_id: Optional[str] = Query(None, alias="userId"),
    resource: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    auth: AuthContext = Depends(require_role(UserRole.ADMIN)),
) -> dict:
    with get_connection() as conn:
        entries = audit_repo.list_entries(
            conn,
            user_id=user_id,
            resource=resource,
            action=action,
            limit=limit,
        )
    return envelope({"logs": entries})
