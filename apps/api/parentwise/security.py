"""Password hashing, session tokens, authorization orderings and join codes."""
from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt

from .schemas import SubscriptionTier, User, UserRole

SESSION_ALGORITHM = "HS256"
SESSION_COOKIE_NAME = "parentwise_session"

FAMILY_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
FAMILY_CODE_LENGTH = 6

BCRYPT_ROUNDS = 12
# bcrypt only reads the first 72 bytes of a password.
BCRYPT_MAX_PASSWORD_BYTES = 72

TIER_ORDER = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.PREMIUM: 1,
    SubscriptionTier.PREMIUM_PLUS: 2,
}

ROLE_ORDER = {
    UserRole.CHILD: 0,
    UserRole.PARENT: 1,
    UserRole.ADMIN: 2,
}


class InvalidSessionToken(Exception):
    pass


def generate_family_code() -> str:
    return "".join(secrets.choice(FAMILY_CODE_ALPHABET) for _ in range(FAMILY_CODE_LENGTH))


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


def hash_verification_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def tier_satisfies(actual: SubscriptionTier, required: SubscriptionTier) -> bool:
    return TIER_ORDER[actual] >= TIER_ORDER[required]


def has_permission(actual: UserRole, required: UserRole) -> bool:
    return ROLE_ORDER[actual] >= ROLE_ORDER[required]


def session_claims(user: User) -> Dict[str, Any]:
    return {
        "sub": user.id,
        "id": user.id,
        "email": user.email,
        "role": user.role.value,
        "subscriptionTier": user.subscription_tier.value,
        "timezone": user.timezone,
        "language": user.language,
        "onboardingCompleted": user.onboarding_completed,
    }


def issue_session_token(
    user: User,
    *,
    secret: str,
    max_age_seconds: int,
    now: Optional[datetime] = None,
) -> str:
    """Return a signed session token carrying the user's authorization attributes."""

    issued_at = now or datetime.now(tz=timezone.utc)
    payload = session_claims(user)
    payload["iat"] = int(issued_at.timestamp())
    payload["exp"] = int((issued_at + timedelta(seconds=max_age_seconds)).timestamp())
    return jwt.encode(payload, secret, algorithm=SESSION_ALGORITHM)


def decode_session_token(token: str, *, secret: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[SESSION_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as exc:
        raise InvalidSessionToken(str(exc)) from exc
    return payload


def issue_state_token(purpose: str, *, secret: str, ttl_seconds: int = 600, **claims: Any) -> str:
    """Short-lived signed value for round trips through a third party (OAuth state)."""

    now = datetime.now(tz=timezone.utc)
    payload = {
        "purpose": purpose,
        "nonce": secrets.token_urlsafe(16),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        **claims,
    }
    return jwt.encode(payload, secret, algorithm=SESSION_ALGORITHM)


def decode_state_token(token: str, purpose: str, *, secret: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[SESSION_ALGORITHM])
    except jwt.PyJWTError as exc:
        raise InvalidSessionToken(str(exc)) from exc
    if payload.get("purpose") != purpose:
        raise InvalidSessionToken("state token purpose mismatch")
    return payload
