"""First-run onboarding: profile, family, first child, welcome notice and audit row."""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Literal, Optional

from pydantic import Field, StrictBool, ValidationInfo, field_validator

from .errors import NotFoundError
from .repositories import audit as audit_repo
from .repositories import children as child_repo
from .repositories import families as family_repo
from .repositories import notifications as notification_repo
from .repositories import users as user_repo
from .schemas import ApiModel, Child, Family, Gender, NotificationType, User

logger = logging.getLogger(__name__)

WELCOME_TITLE = "Welcome to ParentWise!"


class PrivacySettings(ApiModel):
    share_progress: StrictBool
    allow_analytics: StrictBool
    email_notifications: StrictBool


class OnboardingRequest(ApiModel):
    name: str = Field(..., min_length=2)
    timezone: str = Field(..., min_length=1)
    family_setup: Literal["create", "join"]
    family_name: Optional[str] = None
    family_code: Optional[str] = Field(default=None, validate_default=True)
    child_name: str = Field(..., min_length=1)
    child_date_of_birth: date
    child_gender: Optional[Gender] = None
    child_interests: Optional[List[str]] = None
    privacy_settings: PrivacySettings
    accept_terms: StrictBool

    @field_validator("family_code")
    @classmethod
    def _code_required_to_join(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        code = (value or "").strip().upper() or None
        if info.data.get("family_setup") == "join" and not code:
            raise ValueError("Family code is required to join a family")
        return code

    @field_validator("child_date_of_birth", mode="before")
    @classmethod
    def _date_part(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("Date of birth is required")
            return value.split("T", 1)[0]
        return value

    @field_validator("accept_terms")
    @classmethod
    def _terms_accepted(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("You must accept the terms")
        return value


@dataclass
class OnboardingResult:
    user: User
    family: Optional[Family]
    child: Child


def complete_onboarding(
    conn: sqlite3.Connection,
    user: User,
    request: OnboardingRequest,
    *,
    ip_address: str,
    user_agent: Optional[str],
) -> OnboardingResult:
    """Apply the whole submission on ``conn``; the caller owns the transaction."""

    privacy = request.privacy_settings
    family: Optional[Family] = None
    if request.family_setup == "join":
        family = family_repo.get_family_by_code(conn, request.family_code)
        if family is None:
            raise NotFoundError("Family code not found")

    updated_user = user_repo.update_profile(
        conn,
        user,
        name=request.name,
        timezone=request.timezone,
        preferences={
            "shareProgress": privacy.share_progress,
            "allowAnalytics": privacy.allow_analytics,
            "emailNotifications": privacy.email_notifications,
            "onboardingCompleted": True,
        },
    )

    if request.family_setup == "create":
        family = family_repo.create_family(
            conn,
            name=request.family_name or f"{request.name}'s Family",
            settings={"shareProgress": privacy.share_progress},
        )
        family_repo.add_member(conn, family_id=family.id, user_id=updated_user.id, is_owner=True)
    else:
        family_repo.add_member(conn, family_id=family.id, user_id=updated_user.id, is_owner=False)

    child = child_repo.create_child(
        conn,
        parent_id=updated_user.id,
        family_id=family.id if family else None,
        name=request.child_name,
        date_of_birth=request.child_date_of_birth,
        gender=request.child_gender,
        interests=request.child_interests or [],
        allergies=[],
        medications=[],
    )

    notification_repo.create_notification(
        conn,
        user_id=updated_user.id,
        type=NotificationType.SYSTEM_NOTIFICATION,
        title=WELCOME_TITLE,
        message=(
            f"Welcome {request.name}! Your account is set up and ready to go. "
            f"Explore activities for {request.child_name} and create your first parenting plan."
        ),
        data={"childId": child.id, "onboarding": True},
    )

    audit_repo.record(
        conn,
        user_id=updated_user.id,
        action="ONBOARDING_COMPLETE",
        resource="User",
        resource_id=updated_user.id,
        new_values={
            "familySetup": request.family_setup,
            "childName": request.child_name,
            "familyId": family.id if family else None,
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )

    logger.info(
        "onboarding complete",
        extra={"user_id": updated_user.id, "family_setup": request.family_setup},
    )
    return OnboardingResult(user=updated_user, family=family, child=child)
