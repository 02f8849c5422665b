from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from fastapi import Cookie, Depends, Header, Request

from .config import get_config
from .db import get_connection
from .errors import AuthenticationError, ForbiddenError, NotFoundError, SubscriptionRequiredError
from .repositories import children as child_repo
from .repositories import families as family_repo
from .repositories import users as user_repo
from .schemas import Child, FamilyMember, SubscriptionTier, User, UserRole
from .security import (
    SESSION_COOKIE_NAME,
    InvalidSessionToken,
    decode_session_token,
    has_permission,
    tier_satisfies,
)

logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    user: User
    claims: Dict[str, Any]
    token: str
    memberships: List[FamilyMember] = field(default_factory=list)

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.user.role == UserRole.ADMIN

    @property
    def family_ids(self) -> List[str]:
        return [membership.family_id for membership in self.memberships]


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError()
    return parts[1]


def resolve_token(authorization: Optional[str], cookie_value: Optional[str]) -> str:
    token = _parse_bearer_token(authorization) or cookie_value
    if not token:
        raise AuthenticationError()
    return token


async def get_auth_context(
    authorization: Optional[str] = Header(None),
    session_cookie: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> AuthContext:
    token = resolve_token(authorization, session_cookie)
    try:
        claims = decode_session_token(token, secret=get_config().auth_secret)
    except InvalidSessionToken as exc:
        logger.info("rejected session token", extra={"reason": str(exc)})
        raise AuthenticationError() from exc

    with get_connection() as conn:
        user = user_repo.get_user(conn, claims["sub"])
        if user is None:
            raise AuthenticationError()
        memberships = family_repo.list_memberships(conn, user.id)

    return AuthContext(user=user, claims=claims, token=token, memberships=memberships)


def require_role(role: UserRole) -> Callable[..., AuthContext]:
    async def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not has_permission(auth.user.role, role):
            raise ForbiddenError()
        return auth

    return dependency


def require_tier(tier: SubscriptionTier) -> Callable[..., AuthContext]:
    async def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not tier_satisfies(auth.user.subscription_tier, tier):
            raise SubscriptionRequiredError(f"{tier.value} subscription required")
        return auth

    return dependency


def can_access_child(auth: AuthContext, child: Child) -> bool:
    return auth.is_admin or child.parent_id == auth.user_id


def can_access_family(auth: AuthContext, family_id: str) -> bool:
    return auth.is_admin or family_id in auth.family_ids


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or "unknown"


def load_accessible_child(conn: sqlite3.Connection, auth: AuthContext, child_id: str) -> Child:
    """Return the child or raise 404 when it is missing or belongs to someone else."""

    child = child_repo.get_child(conn, child_id)
    if child is None or not can_access_child(auth, child):
        raise NotFoundError("Child not found or access denied")
    return child
