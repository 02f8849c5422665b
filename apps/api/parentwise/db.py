"""SQLite helpers."""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional
from uuid import uuid4

from .config import get_config

logger = logging.getLogger(__name__)

TABLES = [
    "audit_logs",
    "notifications",
    "content_library",
    "child_assessments",
    "parenting_plans",
    "activity_logs",
    "activities",
    "milestones",
    "children",
    "family_members",
    "families",
    "verification_tokens",
    "accounts",
    "users",
]

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        name TEXT,
        image TEXT,
        password_hash TEXT,
        role TEXT NOT NULL DEFAULT 'PARENT',
        subscription_tier TEXT NOT NULL DEFAULT 'FREE',
        timezone TEXT NOT NULL DEFAULT 'UTC',
        language TEXT NOT NULL DEFAULT 'en',
        preferences TEXT NOT NULL DEFAULT '{}',
        email_verified_at TEXT,
        last_login_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        provider TEXT NOT NULL,
        provider_account_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE(provider, provider_account_id),
        FOREIGN KEY (user_id) REFERENCES users(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS verification_tokens (
        identifier TEXT NOT NULL,
        token_hash TEXT NOT NULL UNIQUE,
        expires_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS families (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        family_code TEXT NOT NULL UNIQUE,
        settings TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS family_members (
        id TEXT PRIMARY KEY,
        family_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'parent',
        is_owner INTEGER NOT NULL DEFAULT 0,
        joined_at TEXT NOT NULL,
        UNIQUE(family_id, user_id),
        FOREIGN KEY (family_id) REFERENCES families(id),
        FOREIGN KEY (user_id) REFERENCES users(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS children (
        id TEXT PRIMARY KEY,
        parent_id TEXT NOT NULL,
        family_id TEXT,
        name TEXT NOT NULL,
        gender TEXT NOT NULL DEFAULT 'PREFER_NOT_TO_SAY',
        date_of_birth TEXT NOT NULL,
        interests TEXT NOT NULL DEFAULT '[]',
        allergies TEXT NOT NULL DEFAULT '[]',
        medications TEXT NOT NULL DEFAULT '[]',
        challenges TEXT NOT NULL DEFAULT '[]',
        notes TEXT,
        health_notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (parent_id) REFERENCES users(id),
        FOREIGN KEY (family_id) REFERENCES families(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS milestones (
        id TEXT PRIMARY KEY,
        child_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        category TEXT NOT NULL,
        age_range_min INTEGER NOT NULL,
        age_range_max INTEGER NOT NULL,
        is_completed INTEGER NOT NULL DEFAULT 0,
        completed_at TEXT,
        notes TEXT,
        evidence TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (child_id) REFERENCES children(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS activities (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        instructions TEXT NOT NULL,
        age_range_min INTEGER NOT NULL,
        age_range_max INTEGER NOT NULL,
        duration INTEGER NOT NULL,
        difficulty TEXT NOT NULL,
        type TEXT NOT NULL,
        materials TEXT NOT NULL DEFAULT '[]',
        tags TEXT NOT NULL DEFAULT '[]',
        is_premium INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS activity_logs (
        id TEXT PRIMARY KEY,
        activity_id TEXT NOT NULL,
        child_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        completed_at TEXT NOT NULL,
        duration INTEGER,
        enjoyment INTEGER,
        difficulty INTEGER,
        notes TEXT,
        observations TEXT,
        skills TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (activity_id) REFERENCES activities(id),
        FOREIGN KEY (child_id) REFERENCES children(id),
        FOREIGN KEY (user_id) REFERENCES users(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS parenting_plans (
        id TEXT PRIMARY KEY,
        parent_id TEXT NOT NULL,
        child_id TEXT,
        family_id TEXT,
        title TEXT NOT NULL,
        description TEXT,
        goals TEXT NOT NULL DEFAULT '{}',
        strategies TEXT NOT NULL DEFAULT '{}',
        timeline TEXT NOT NULL DEFAULT '{}',
        status TEXT NOT NULL DEFAULT 'DRAFT',
        progress INTEGER NOT NULL DEFAULT 0,
        tags TEXT NOT NULL DEFAULT '[]',
        ai_prompts TEXT,
        personalizations TEXT NOT NULL DEFAULT '{}',
        completed_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (parent_id) REFERENCES users(id),
        FOREIGN KEY (child_id) REFERENCES children(id),
        FOREIGN KEY (family_id) REFERENCES families(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS child_assessments (
        id TEXT PRIMARY KEY,
        child_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        assessment_type TEXT NOT NULL,
        questions TEXT NOT NULL DEFAULT '{}',
        scores TEXT NOT NULL DEFAULT '{}',
        insights TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (child_id) REFERENCES children(id),
        FOREIGN KEY (user_id) REFERENCES users(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        data TEXT NOT NULL DEFAULT '{}',
        is_read INTEGER NOT NULL DEFAULT 0,
        read_at TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS content_library (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        content_type TEXT NOT NULL,
        body TEXT NOT NULL,
        age_range_min INTEGER,
        age_range_max INTEGER,
        tags TEXT NOT NULL DEFAULT '[]',
        is_premium INTEGER NOT NULL DEFAULT 0,
        author_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (author_id) REFERENCES users(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_logs (
        id TEXT PRIMARY KEY,
        user_id TEXT,
        action TEXT NOT NULL,
        resource TEXT NOT NULL,
        resource_id TEXT,
        old_values TEXT,
        new_values TEXT,
        ip_address TEXT,
        user_agent TEXT,
        session_id TEXT,
        created_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS children_parent_idx ON children (parent_id)",
    "CREATE INDEX IF NOT EXISTS milestones_child_idx ON milestones (child_id)",
    "CREATE INDEX IF NOT EXISTS plans_parent_child_idx ON parenting_plans (parent_id, child_id)",
    "CREATE INDEX IF NOT EXISTS notifications_user_idx ON notifications (user_id, is_read)",
    "CREATE INDEX IF NOT EXISTS audit_logs_user_idx ON audit_logs (user_id, created_at)",
]


def _database_path() -> Path:
    path = get_config().resolved_database_path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_database_path())
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize_db() -> None:
    with get_connection() as conn:
        for statement in _SCHEMA:
            conn.execute(statement)
        conn.commit()
    logger.info("database ready", extra={"path": str(_database_path())})


@contextmanager
def get_connection() -> Iterator[sqlite3.Connection]:
    conn = _connect()
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """Yield a connection whose writes commit together or not at all."""

    conn = _connect()
    try:
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


def new_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def now_iso() -> str:
    return utcnow().isoformat()


def dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def row_to_dict(row: Optional[sqlite3.Row], json_fields: Iterable[str] = ()) -> Dict[str, Any]:
    if row is None:
        return {}
    data = {key: row[key] for key in row.keys()}
    for field in json_fields:
        raw = data.get(field)
        if raw is None:
            continue
        try:
            data[field] = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            logger.warning("malformed json column", extra={"column": field})
            data[field] = None
    return data
