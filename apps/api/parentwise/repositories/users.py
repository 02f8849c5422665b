"""User rows."""
from __future__ import annotations

import sqlite3
from typing import Any, Dict, Optional, Tuple

from ..db import dump_json, new_id, now_iso, row_to_dict, utcnow
from ..schemas import SubscriptionTier, User, UserRole

_JSON_FIELDS = ("preferences",)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _row_to_user(row: Optional[sqlite3.Row]) -> Optional[User]:
    if row is None:
        return None
    data = row_to_dict(row, _JSON_FIELDS)
    data.pop("password_hash", None)
    data["preferences"] = data.get("preferences") or {}
    return User.model_validate(data)


def create_user(
    conn: sqlite3.Connection,
    *,
    email: str,
    name: Optional[str] = None,
    image: Optional[str] = None,
    password_hash: Optional[str] = None,
    role: UserRole = UserRole.PARENT,
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE,
    email_verified: bool = False,
    preferences: Optional[Dict[str, Any]] = None,
) -> User:
    now = now_iso()
    user_id = new_id()
    conn.execute(
        """
        INSERT INTO users (
            id,
            email,
            name,
            image,
            password_hash,
            role,
            subscription_tier,
            timezone,
            language,
            preferences,
            email_verified_at,
            last_login_at,
            created_at,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, 'UTC', 'en', ?, ?, NULL, ?, ?)
        """,
        (
            user_id,
            normalize_email(email),
            name,
            image,
            password_hash,
            role.value,
            subscription_tier.value,
            dump_json(preferences or {}),
            now if email_verified else None,
            now,
            now,
        ),
    )
    return get_user(conn, user_id)


def get_user(conn: sqlite3.Connection, user_id: str) -> Optional[User]:
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return _row_to_user(row)


def get_user_by_email(conn: sqlite3.Connection, email: str) -> Optional[User]:
    row = conn.execute("SELECT * FROM users WHERE email = ?", (normalize_email(email),)).fetchone()
    return _row_to_user(row)


def get_user_with_password_hash(conn: sqlite3.Connection, email: str) -> Tuple[Optional[User], Optional[str]]:
    row = conn.execute("SELECT * FROM users WHERE email = ?", (normalize_email(email),)).fetchone()
    if row is None:
        return None, None
    return _row_to_user(row), row["password_hash"]


def save_user(conn: sqlite3.Connection, user: User) -> User:
    """Write every mutable column of ``user`` back to its row."""

    conn.execute(
        """
        UPDATE users SET
            email = ?,
            name = ?,
            image = ?,
            role = ?,
            subscription_tier = ?,
            timezone = ?,
            language = ?,
            preferences = ?,
            email_verified_at = ?,
            last_login_at = ?,
            updated_at = ?
        WHERE id = ?
        """,
        (
            user.email,
            user.name,
            user.image,
            user.role.value,
            user.subscription_tier.value,
            user.timezone,
            user.language,
            dump_json(user.preferences),
            user.email_verified_at.isoformat() if user.email_verified_at else None,
            user.last_login_at.isoformat() if user.last_login_at else None,
            now_iso(),
            user.id,
        ),
    )
    return get_user(conn, user.id)


def update_profile(
    conn: sqlite3.Connection,
    user: User,
    *,
    name: str,
    timezone: str,
    preferences: Dict[str, Any],
) -> User:
    return save_user(conn, user.model_copy(update={"name": name, "timezone": timezone, "preferences": preferences}))


def update_preferences(conn: sqlite3.Connection, user: User, preferences: Dict[str, Any]) -> User:
    merged = dict(user.preferences)
    merged.update(preferences)
    return save_user(conn, user.model_copy(update={"preferences": merged}))


def update_last_login(conn: sqlite3.Connection, user: User) -> User:
    return save_user(conn, user.model_copy(update={"last_login_at": utcnow()}))


def mark_email_verified(conn: sqlite3.Connection, user: User) -> User:
    if user.email_verified_at is not None:
        return user
    return save_user(conn, user.model_copy(update={"email_verified_at": utcnow()}))
