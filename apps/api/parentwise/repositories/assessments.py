"""Child assessment rows."""
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from ..db import dump_json, new_id, now_iso, row_to_dict
from ..schemas import ChildAssessment

_JSON_FIELDS = ("questions", "scores", "insights")


def _row_to_assessment(row: Optional[sqlite3.Row]) -> Optional[ChildAssessment]:
    if row is None:
        return None
    data = row_to_dict(row, _JSON_FIELDS)
    for field in _JSON_FIELDS:
        data[field] = data.get(field) or {}
    return ChildAssessment.model_validate(data)


def create_assessment(
    conn: sqlite3.Connection,
    *,
    child_id: str,
    user_id: str,
    title: str,
    assessment_type: str,
    questions: Dict[str, Any],
    scores: Dict[str, Any],
    insights: Dict[str, Any],
) -> ChildAssessment:
    now = now_iso()
    assessment_id = new_id()
    conn.execute(
        """
        INSERT INTO child_assessments (
            id, child_id, user_id, title, assessment_type, questions, scores, insights, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            assessment_id,
            child_id,
            user_id,
            title,
            assessment_type,
            dump_json(questions),
            dump_json(scores),
            dump_json(insights),
            now,
            now,
        ),
    )
    row = conn.execute("SELECT * FROM child_assessments WHERE id = ?", (assessment_id,)).fetchone()
    return _row_to_assessment(row)


def list_assessments_for_child(conn: sqlite3.Connection, child_id: str) -> List[ChildAssessment]:
    rows = conn.execute(
        "SELECT * FROM child_assessments WHERE child_id = ? ORDER BY created_at DESC",
        (child_id,),
    ).fetchall()
    return [_row_to_assessment(row) for row in rows]
