"""Content library rows."""
from __future__ import annotations

import sqlite3
from typing import List, Optional

from ..db import dump_json, new_id, now_iso, row_to_dict
from ..schemas import ContentItem


def _row_to_item(row: Optional[sqlite3.Row]) -> Optional[ContentItem]:
    if row is None:
        return None
    data = row_to_dict(row, ("tags",))
    data["tags"] = data.get("tags") or []
    data["is_premium"] = bool(data.get("is_premium"))
    return ContentItem.model_validate(data)


def create_item(
    conn: sqlite3.Connection,
    *,
    title: str,
    content_type: str,
    body: str,
    author_id: Optional[str],
    age_range_min: Optional[int] = None,
    age_range_max: Optional[int] = None,
    tags: Optional[List[str]] = None,
    is_premium: bool = False,
) -> ContentItem:
    now = now_iso()
    item_id = new_id()
    conn.execute(
        """
        INSERT INTO content_library (
            id, title, content_type, body, age_range_min, age_range_max, tags, is_premium, author_id, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            item_id,
            title,
            content_type,
            body,
            age_range_min,
            age_range_max,
            dump_json(tags or []),
            1 if is_premium else 0,
            author_id,
            now,
            now,
        ),
    )
    row = conn.execute("SELECT * FROM content_library WHERE id = ?", (item_id,)).fetchone()
    return _row_to_item(row)


def list_items(
    conn: sqlite3.Connection,
    *,
    include_premium: bool,
    content_type: Optional[str] = None,
    age_months: Optional[int] = None,
) -> List[ContentItem]:
    clauses: List[str] = []
    params: list = []
    if not include_premium:
        clauses.append("is_premium = 0")
    if content_type:
        clauses.append("content_type = ?")
        params.append(content_type)
    if age_months is not None:
        clauses.append("(age_range_min IS NULL OR age_range_min <= ?)")
        clauses.append("(age_range_max IS NULL OR age_range_max >= ?)")
        params.extend([age_months, age_months])
    query = "SELECT * FROM content_library"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY created_at DESC"
    return [_row_to_item(row) for row in conn.execute(query, params).fetchall()]
