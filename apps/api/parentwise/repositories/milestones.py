"""Developmental milestone rows."""
from __future__ import annotations

import sqlite3
from typing import List, Optional

from ..db import dump_json, new_id, now_iso, row_to_dict, utcnow
from ..schemas import Milestone, MilestoneCategory


def _row_to_milestone(row: Optional[sqlite3.Row]) -> Optional[Milestone]:
    if row is None:
        return None
    data = row_to_dict(row, ("evidence",))
    data["evidence"] = data.get("evidence") or []
    data["is_completed"] = bool(data.get("is_completed"))
    return Milestone.model_validate(data)


def create_milestone(
    conn: sqlite3.Connection,
    *,
    child_id: str,
    title: str,
    description: str,
    category: MilestoneCategory,
    age_range_min: int,
    age_range_max: int,
) -> Milestone:
    now = now_iso()
    milestone_id = new_id()
    conn.execute(
        """
        INSERT INTO milestones (
            id,
            child_id,
            title,
            description,
            category,
            age_range_min,
            age_range_max,
            is_completed,
            completed_at,
            notes,
            evidence,
            created_at,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, NULL, NULL, '[]', ?, ?)
        """,
        (milestone_id, child_id, title, description, category.value, age_range_min, age_range_max, now, now),
    )
    return get_milestone(conn, milestone_id)


def get_milestone(conn: sqlite3.Connection, milestone_id: str) -> Optional[Milestone]:
    row = conn.execute("SELECT * FROM milestones WHERE id = ?", (milestone_id,)).fetchone()
    return _row_to_milestone(row)


def list_milestones(conn: sqlite3.Connection, child_id: str, *, completed: Optional[bool] = None) -> List[Milestone]:
    query = "SELECT * FROM milestones WHERE child_id = ?"
    params: list = [child_id]
    if completed is not None:
        query += " AND is_completed = ?"
        params.append(1 if completed else 0)
    query += " ORDER BY age_range_min ASC, created_at ASC"
    rows = conn.execute(query, params).fetchall()
    return [_row_to_milestone(row) for row in rows]


def save_milestone(conn: sqlite3.Connection, milestone: Milestone) -> Milestone:
    conn.execute(
        """
        UPDATE milestones SET
            title = ?,
            description = ?,
            category = ?,
            age_range_min = ?,
            age_range_max = ?,
            is_completed = ?,
            completed_at = ?,
            notes = ?,
            evidence = ?,
            updated_at = ?
        WHERE id = ?
        """,
        (
            milestone.title,
            milestone.description,
            milestone.category.value,
            milestone.age_range_min,
            milestone.age_range_max,
            1 if milestone.is_completed else 0,
            milestone.completed_at.isoformat() if milestone.completed_at else None,
            milestone.notes,
            dump_json(milestone.evidence),
            now_iso(),
            milestone.id,
        ),
    )
    return get_milestone(conn, milestone.id)


def complete_milestone(
    conn: sqlite3.Connection,
    milestone: Milestone,
    *,
    notes: Optional[str] = None,
    evidence: Optional[List[str]] = None,
) -> Milestone:
    updated = milestone.model_copy(
        update={
            "is_completed": True,
            "completed_at": utcnow(),
            "notes": notes,
            "evidence": evidence or [],
        }
    )
    return save_milestone(conn, updated)
