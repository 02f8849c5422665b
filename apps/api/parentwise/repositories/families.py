"""Family and family-membership rows."""
from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from ..db import dump_json, new_id, now_iso, row_to_dict
from ..errors import ConflictError, ServiceUnavailableError
from ..schemas import Family, FamilyMember
from ..security import generate_family_code

logger = logging.getLogger(__name__)

FAMILY_CODE_ATTEMPTS = 10


def _row_to_family(row: Optional[sqlite3.Row]) -> Optional[Family]:
    if row is None:
        return None
    data = row_to_dict(row, ("settings",))
    data["settings"] = data.get("settings") or {}
    return Family.model_validate(data)


def _row_to_member(row: sqlite3.Row) -> FamilyMember:
    data = row_to_dict(row)
    data["is_owner"] = bool(data.get("is_owner"))
    return FamilyMember.model_validate(data)


def family_code_exists(conn: sqlite3.Connection, code: str) -> bool:
    row = conn.execute("SELECT 1 FROM families WHERE family_code = ?", (code,)).fetchone()
    return row is not None


def allocate_family_code(conn: sqlite3.Connection) -> str:
    """Return a join code no existing family uses."""

    for attempt in range(FAMILY_CODE_ATTEMPTS):
        code = generate_family_code()
        if not family_code_exists(conn, code):
            return code
        logger.warning("family code collision", extra={"attempt": attempt + 1})
    raise ServiceUnavailableError("Could not allocate a family code. Please try again.")


def create_family(
    conn: sqlite3.Connection,
    *,
    name: str,
    description: Optional[str] = None,
    settings: Optional[Dict[str, Any]] = None,
) -> Family:
    now = now_iso()
    family_id = new_id()
    conn.execute(
        """
        INSERT INTO families (id, name, description, family_code, settings, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            family_id,
            name,
            description,
            allocate_family_code(conn),
            dump_json(settings or {}),
            now,
            now,
        ),
    )
    return get_family(conn, family_id)


def get_family(conn: sqlite3.Connection, family_id: str) -> Optional[Family]:
    row = conn.execute("SELECT * FROM families WHERE id = ?", (family_id,)).fetchone()
    return _row_to_family(row)


def get_family_by_code(conn: sqlite3.Connection, code: str) -> Optional[Family]:
    row = conn.execute(
        "SELECT * FROM families WHERE family_code = ?",
        (code.strip().upper(),),
    ).fetchone()
    return _row_to_family(row)


def add_member(
    conn: sqlite3.Connection,
    *,
    family_id: str,
    user_id: str,
    role: str = "parent",
    is_owner: bool = False,
) -> FamilyMember:
    member_id = new_id()
    try:
        conn.execute(
            """
            INSERT INTO family_members (id, family_id, user_id, role, is_owner, joined_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (member_id, family_id, user_id, role, 1 if is_owner else 0, now_iso()),
        )
    except sqlite3.IntegrityError as exc:
        raise ConflictError("User is already a member of this family") from exc
    row = conn.execute("SELECT * FROM family_members WHERE id = ?", (member_id,)).fetchone()
    return _row_to_member(row)


def list_members(conn: sqlite3.Connection, family_id: str) -> List[FamilyMember]:
    rows = conn.execute(
        "SELECT * FROM family_members WHERE family_id = ? ORDER BY joined_at ASC",
        (family_id,),
    ).fetchall()
    return [_row_to_member(row) for row in rows]


def list_memberships(conn: sqlite3.Connection, user_id: str) -> List[FamilyMember]:
    rows = conn.execute(
        "SELECT * FROM family_members WHERE user_id = ? ORDER BY joined_at ASC",
        (user_id,),
    ).fetchall()
    return [_row_to_member(row) for row in rows]


def list_member_profiles(conn: sqlite3.Connection, family_id: str) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT fm.user_id, fm.role, fm.is_owner, fm.joined_at, u.name, u.email
        FROM family_members fm
        JOIN users u ON u.id = fm.user_id
        WHERE fm.family_id = ?
        ORDER BY fm.joined_at ASC
        """,
        (family_id,),
    ).fetchall()
    return [
        {
            "userId": row["user_id"],
            "name": row["name"],
            "email": row["email"],
            "role": row["role"],
            "isOwner": bool(row["is_owner"]),
            "joinedAt": row["joined_at"],
        }
        for row in rows
    ]
