from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import Field

from ..auth import AuthContext, client_ip, get_auth_context
from ..db import transaction
from ..repositories import audit as audit_repo
from ..repositories import users as user_repo
from ..schemas import ApiModel, envelope

router = APIRouter(prefix="/api/users", tags=["users"])

# Flags owned by server-side flows rather than user edits.
_PROTECTED_PREFERENCES = {"onboardingCompleted"}


class PreferencesUpdate(ApiModel):
    preferences: Dict[str, Any] = Field(default_factory=dict)
    timezone: Optional[str] = Field(default=None, min_length=1)
    language: Optional[str] = Field(default=None, min_length=2, max_length=10)


@router.get("/me")
async def get_me_endpoint(auth: AuthContext = Depends(get_auth_context)) -> dict:
    return envelope({"user": auth.user, "memberships": auth.memberships})


@router.patch("/me/preferences")
async def update_preferences_endpoint(
    payload: PreferencesUpdate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    changes = {key: value for key, value in payload.preferences.items() if key not in _PROTECTED_PREFERENCES}
    user = auth.user
    with transaction() as conn:
        updated = user_repo.update_preferences(conn, user, changes)
        if payload.timezone or payload.language:
            updated = user_repo.save_user(
                conn,
                updated.model_copy(
                    update={
                        "timezone": payload.timezone or updated.timezone,
                        "language": payload.language or updated.language,
                    }
                ),
            )
        audit_repo.record(
            conn,
            user_id=user.id,
            action="USER_PREFERENCES_UPDATE",
            resource="User",
            resource_id=user.id,
            old_values={"preferences": user.preferences, "timezone": user.timezone, "language": user.language},
            new_values={"preferences": updated.preferences, "timezone": updated.timezone, "language": updated.language},
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return envelope({"user": updated}, message="Preferences updated")
