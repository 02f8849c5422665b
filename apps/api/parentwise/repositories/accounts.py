"""OAuth account links and magic-link verification tokens."""
from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional

from ..db import new_id, now_iso


def get_user_id_for_account(conn: sqlite3.Connection, provider: str, provider_account_id: str) -> Optional[str]:
    row = conn.execute(
        "SELECT user_id FROM accounts WHERE provider = ? AND provider_account_id = ?",
        (provider, provider_account_id),
    ).fetchone()
    return row["user_id"] if row else None


def link_account(conn: sqlite3.Connection, *, user_id: str, provider: str, provider_account_id: str) -> None:
    conn.execute(
        """
        INSERT OR IGNORE INTO accounts (id, user_id, provider, provider_account_id, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (new_id(), user_id, provider, provider_account_id, now_iso()),
    )


def create_verification_token(
    conn: sqlite3.Connection,
    *,
    identifier: str,
    token_hash: str,
    expires_at: datetime,
) -> None:
    conn.execute(
        "DELETE FROM verification_tokens WHERE identifier = ? AND expires_at <= ?",
        (identifier, now_iso()),
    )
    conn.execute(
        "INSERT INTO verification_tokens (identifier, token_hash, expires_at) VALUES (?, ?, ?)",
        (identifier, token_hash, expires_at.isoformat()),
    )


def delete_verification_token(conn: sqlite3.Connection, *, identifier: str, token_hash: str) -> None:
    conn.execute(
        "DELETE FROM verification_tokens WHERE identifier = ? AND token_hash = ?",
        (identifier, token_hash),
    )


def consume_verification_token(conn: sqlite3.Connection, *, identifier: str, token_hash: str) -> Optional[datetime]:
    """Delete the token and return its expiry, or ``None`` when it does not exist."""

    row = conn.execute(
        "SELECT expires_at FROM verification_tokens WHERE identifier = ? AND token_hash = ?",
        (identifier, token_hash),
    ).fetchone()
    if row is None:
        return None
    conn.execute(
        "DELETE FROM verification_tokens WHERE identifier = ? AND token_hash = ?",
        (identifier, token_hash),
    )
    return datetime.fromisoformat(row["expires_at"])
