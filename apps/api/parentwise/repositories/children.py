"""Child profile rows."""
from __future__ import annotations

import sqlite3
from datetime import date
from typing import List, Optional

from ..db import dump_json, new_id, now_iso, row_to_dict
from ..schemas import Child, Gender

_JSON_FIELDS = ("interests", "allergies", "medications", "challenges")


def _row_to_child(row: Optional[sqlite3.Row]) -> Optional[Child]:
    if row is None:
        return None
    data = row_to_dict(row, _JSON_FIELDS)
    for field in _JSON_FIELDS:
        data[field] = data.get(field) or []
    return Child.model_validate(data)


def create_child(
    conn: sqlite3.Connection,
    *,
    parent_id: str,
    name: str,
    date_of_birth: date,
    family_id: Optional[str] = None,
    gender: Optional[Gender] = None,
    interests: Optional[List[str]] = None,
    allergies: Optional[List[str]] = None,
    medications: Optional[List[str]] = None,
    notes: Optional[str] = None,
) -> Child:
    now = now_iso()
    child_id = new_id()
    conn.execute(
        """
        INSERT INTO children (
            id,
            parent_id,
            family_id,
            name,
            gender,
            date_of_birth,
            interests,
            allergies,
            medications,
            challenges,
            notes,
            health_notes,
            created_at,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, '[]', ?, NULL, ?, ?)
        """,
        (
            child_id,
            parent_id,
            family_id,
            name,
            (gender or Gender.PREFER_NOT_TO_SAY).value,
            date_of_birth.isoformat(),
            dump_json(interests or []),
            dump_json(allergies or []),
            dump_json(medications or []),
            notes,
            now,
            now,
        ),
    )
    return get_child(conn, child_id)


def get_child(conn: sqlite3.Connection, child_id: str) -> Optional[Child]:
    row = conn.execute("SELECT * FROM children WHERE id = ?", (child_id,)).fetchone()
    return _row_to_child(row)


def get_owned_child(conn: sqlite3.Connection, child_id: str, parent_id: str) -> Optional[Child]:
    row = conn.execute(
        "SELECT * FROM children WHERE id = ? AND parent_id = ?",
        (child_id, parent_id),
    ).fetchone()
    return _row_to_child(row)


def list_children_for_parent(conn: sqlite3.Connection, parent_id: str) -> List[Child]:
    rows = conn.execute(
        "SELECT * FROM children WHERE parent_id = ? ORDER BY date_of_birth DESC",
        (parent_id,),
    ).fetchall()
    return [_row_to_child(row) for row in rows]


def list_children_for_family(conn: sqlite3.Connection, family_id: str) -> List[Child]:
    rows = conn.execute(
        "SELECT * FROM children WHERE family_id = ? ORDER BY date_of_birth DESC",
        (family_id,),
    ).fetchall()
    return [_row_to_child(row) for row in rows]


def save_child(conn: sqlite3.Connection, child: Child) -> Child:
    conn.execute(
        """
        UPDATE children SET
            family_id = ?,
            name = ?,
            gender = ?,
            date_of_birth = ?,
            interests = ?,
            allergies = ?,
            medications = ?,
            challenges = ?,
            notes = ?,
            health_notes = ?,
            updated_at = ?
        WHERE id = ?
        """,
        (
            child.family_id,
            child.name,
            child.gender.value,
            child.date_of_birth.isoformat(),
            dump_json(child.interests),
            dump_json(child.allergies),
            dump_json(child.medications),
            dump_json(child.challenges),
            child.notes,
            child.health_notes,
            now_iso(),
            child.id,
        ),
    )
    return get_child(conn, child.id)
