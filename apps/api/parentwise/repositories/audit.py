"""Audit trail rows."""
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from ..db import dump_json, new_id, now_iso, row_to_dict
from ..schemas import AuditLog


def record(
    conn: sqlite3.Connection,
    *,
    action: str,
    resource: str,
    user_id: Optional[str] = None,
    resource_id: Optional[str] = None,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    session_id: Optional[str] = None,
) -> AuditLog:
    entry_id = new_id()
    conn.execute(
        """
        INSERT INTO audit_logs (
            id,
            user_id,
            action,
            resource,
            resource_id,
            old_values,
            new_values,
            ip_address,
            user_agent,
            session_id,
            created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            entry_id,
            user_id,
            action,
            resource,
            resource_id,
            dump_json(old_values),
            dump_json(new_values),
            ip_address,
            user_agent,
            session_id,
            now_iso(),
        ),
    )
    row = conn.execute("SELECT * FROM audit_logs WHERE id = ?", (entry_id,)).fetchone()
    return AuditLog.model_validate(row_to_dict(row, ("old_values", "new_values")))


def list_entries(
    conn: sqlite3.Connection,
    *,
    user_id: Optional[str] = None,
    resource: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100,
) -> List[AuditLog]:
    clauses: List[str] = []
    params: list = []
    if user_id:
        clauses.append("user_id = ?")
        params.append(user_id)
    if resource:
        clauses.append("resource = ?")
        params.append(resource)
    if action:
        clauses.append("action = ?")
        params.append(action)
    query = "SELECT * FROM audit_logs"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY created_at DESC LIMIT ?"
    params.append(limit)
    rows = conn.execute(query, params).fetchall()
    return [AuditLog.model_validate(row_to_dict(row, ("old_values", "new_values"))) for row in rows]
