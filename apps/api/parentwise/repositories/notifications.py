"""Notification rows."""
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from ..db import dump_json, new_id, now_iso, row_to_dict
from ..schemas import Notification, NotificationType


def _row_to_notification(row: Optional[sqlite3.Row]) -> Optional[Notification]:
    if row is None:
        return None
    data = row_to_dict(row, ("data",))
    data["data"] = data.get("data") or {}
    data["is_read"] = bool(data.get("is_read"))
    return Notification.model_validate(data)


def create_notification(
    conn: sqlite3.Connection,
    *,
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> Notification:
    notification_id = new_id()
    conn.execute(
        """
        INSERT INTO notifications (id, user_id, type, title, message, data, is_read, read_at, created_at)
        VALUES (?, ?, ?, ?, ?, ?, 0, NULL, ?)
        """,
        (notification_id, user_id, type.value, title, message, dump_json(data or {}), now_iso()),
    )
    return get_notification(conn, notification_id)


def get_notification(conn: sqlite3.Connection, notification_id: str) -> Optional[Notification]:
    row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
    return _row_to_notification(row)


def list_notifications(
    conn: sqlite3.Connection,
    user_id: str,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> List[Notification]:
    query = "SELECT * FROM notifications WHERE user_id = ?"
    if unread_only:
        query += " AND is_read = 0"
    query += " ORDER BY created_at DESC LIMIT ?"
    rows = conn.execute(query, (user_id, limit)).fetchall()
    return [_row_to_notification(row) for row in rows]


def mark_read(conn: sqlite3.Connection, notification: Notification) -> Notification:
    if notification.is_read:
        return notification
    conn.execute(
        "UPDATE notifications SET is_read = 1, read_at = ? WHERE id = ?",
        (now_iso(), notification.id),
    )
    return get_notification(conn, notification.id)
