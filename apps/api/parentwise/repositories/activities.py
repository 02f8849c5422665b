"""Activity catalog and activity-log rows."""
from __future__ import annotations

import sqlite3
from typing import List, Optional

from ..db import dump_json, new_id, now_iso, row_to_dict
from ..schemas import Activity, ActivityDifficulty, ActivityLog, ActivityType


def _row_to_activity(row: Optional[sqlite3.Row]) -> Optional[Activity]:
    if row is None:
        return None
    data = row_to_dict(row, ("materials", "tags"))
    data["materials"] = data.get("materials") or []
    data["tags"] = data.get("tags") or []
    data["is_premium"] = bool(data.get("is_premium"))
    return Activity.model_validate(data)


def _row_to_log(row: Optional[sqlite3.Row]) -> Optional[ActivityLog]:
    if row is None:
        return None
    data = row_to_dict(row, ("skills",))
    data["skills"] = data.get("skills") or []
    return ActivityLog.model_validate(data)


def create_activity(
    conn: sqlite3.Connection,
    *,
    title: str,
    description: str,
    instructions: str,
    age_range_min: int,
    age_range_max: int,
    duration: int,
    difficulty: ActivityDifficulty,
    type: ActivityType,
    materials: Optional[List[str]] = None,
    tags: Optional[List[str]] = None,
    is_premium: bool = False,
) -> Activity:
    now = now_iso()
    activity_id = new_id()
    conn.execute(
        """
        INSERT INTO activities (
            id,
            title,
            description,
            instructions,
            age_range_min,
            age_range_max,
            duration,
            difficulty,
            type,
            materials,
            tags,
            is_premium,
            created_at,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            activity_id,
            title,
            description,
            instructions,
            age_range_min,
            age_range_max,
            duration,
            difficulty.value,
            type.value,
            dump_json(materials or []),
            dump_json(tags or []),
            1 if is_premium else 0,
            now,
            now,
        ),
    )
    return get_activity(conn, activity_id)


def get_activity(conn: sqlite3.Connection, activity_id: str) -> Optional[Activity]:
    row = conn.execute("SELECT * FROM activities WHERE id = ?", (activity_id,)).fetchone()
    return _row_to_activity(row)


def list_activities(
    conn: sqlite3.Connection,
    *,
    child_age_months: Optional[int] = None,
    type: Optional[ActivityType] = None,
    difficulty: Optional[ActivityDifficulty] = None,
    max_duration: Optional[int] = None,
    is_premium: Optional[bool] = None,
) -> List[Activity]:
    clauses: List[str] = []
    params: list = []
    if child_age_months is not None:
        clauses.append("age_range_min <= ? AND age_range_max >= ?")
        params.extend([child_age_months, child_age_months])
    if type is not None:
        clauses.append("type = ?")
        params.append(type.value)
    if difficulty is not None:
        clauses.append("difficulty = ?")
        params.append(difficulty.value)
    if max_duration is not None:
        clauses.append("duration <= ?")
        params.append(max_duration)
    if is_premium is not None:
        clauses.append("is_premium = ?")
        params.append(1 if is_premium else 0)
    query = "SELECT * FROM activities"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY created_at DESC"
    rows = conn.execute(query, params).fetchall()
    return [_row_to_activity(row) for row in rows]


def log_activity(
    conn: sqlite3.Connection,
    *,
    activity_id: str,
    child_id: str,
    user_id: str,
    duration: Optional[int] = None,
    enjoyment: Optional[int] = None,
    difficulty: Optional[int] = None,
    notes: Optional[str] = None,
    observations: Optional[str] = None,
    skills: Optional[List[str]] = None,
) -> ActivityLog:
    now = now_iso()
    log_id = new_id()
    conn.execute(
        """
        INSERT INTO activity_logs (
            id,
            activity_id,
            child_id,
            user_id,
            completed_at,
            duration,
            enjoyment,
            difficulty,
            notes,
            observations,
            skills,
            created_at,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            log_id,
            activity_id,
            child_id,
            user_id,
            now,
            duration,
            enjoyment,
            difficulty,
            notes,
            observations,
            dump_json(skills or []),
            now,
            now,
        ),
    )
    row = conn.execute("SELECT * FROM activity_logs WHERE id = ?", (log_id,)).fetchone()
    return _row_to_log(row)


def list_logs_for_child(conn: sqlite3.Connection, child_id: str, *, limit: int = 50) -> List[ActivityLog]:
    rows = conn.execute(
        "SELECT * FROM activity_logs WHERE child_id = ? ORDER BY completed_at DESC LIMIT ?",
        (child_id, limit),
    ).fetchall()
    return [_row_to_log(row) for row in rows]
