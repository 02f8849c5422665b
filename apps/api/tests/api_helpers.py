from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from parentwise.db import get_connection, transaction
from parentwise.identity import issue_session
from parentwise.repositories import children as child_repo
from parentwise.repositories import users as user_repo
from parentwise.schemas import Child, SubscriptionTier, User, UserRole


def make_user(
    email: str = "parent@example.com",
    *,
    name: Optional[str] = "Pat Parent",
    role: UserRole = UserRole.PARENT,
    tier: SubscriptionTier = SubscriptionTier.FREE,
    password_hash: Optional[str] = None,
) -> User:
    with transaction() as conn:
        return user_repo.create_user(
            conn,
            email=email,
            name=name,
            role=role,
            subscription_tier=tier,
            password_hash=password_hash,
        )


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {issue_session(user)}"}


def make_child(parent: User, *, name: str = "Leo", date_of_birth: date = date(2022, 3, 10), **kwargs: Any) -> Child:
    with transaction() as conn:
        return child_repo.create_child(
            conn,
            parent_id=parent.id,
            name=name,
            date_of_birth=date_of_birth,
            **kwargs,
        )


def count_rows(table: str, where: str = "1 = 1", params: tuple = ()) -> int:
    with get_connection() as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table} WHERE {where}", params).fetchone()[0]


def onboarding_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "name": "Ana",
        "timezone": "America/New_York",
        "familySetup": "create",
        "childName": "Leo",
        "childDateOfBirth": "2022-03-10",
        "childInterests": ["blocks", "music"],
        "privacySettings": {
            "shareProgress": True,
            "allowAnalytics": False,
            "emailNotifications": True,
        },
        "acceptTerms": True,
    }
    payload.update(overrides)
    return payload


PLAN_OUTPUT: Dict[str, Any] = {
    "title": "Calm Mornings for Leo",
    "description": "A gentle routine plan.",
    "goals": {"primary": "Smoother mornings", "secondary": ["Less screen time"], "timeline": "3 months"},
    "strategies": {"daily": ["Picture schedule"], "weekly": ["Family walk"], "monthly": ["Review progress"]},
    "timeline": [
        {"period": "week1", "focus": "Establish routines"},
        {"period": "week2", "focus": "Build on interests"},
    ],
    "activities": ["Music time"],
    "tips": ["Stay consistent"],
}
