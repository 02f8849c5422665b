"""Parenting plan rows."""
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from ..db import dump_json, new_id, now_iso, row_to_dict, utcnow
from ..schemas import ParentingPlan, PlanStatus

_JSON_FIELDS = ("goals", "strategies", "timeline", "tags", "ai_prompts", "personalizations")

AI_GENERATED_TAG = "ai-generated"


def _row_to_plan(row: Optional[sqlite3.Row]) -> Optional[ParentingPlan]:
    if row is None:
        return None
    data = row_to_dict(row, _JSON_FIELDS)
    for field in ("goals", "strategies", "timeline", "personalizations"):
        data[field] = data.get(field) or {}
    data["tags"] = data.get("tags") or []
    return ParentingPlan.model_validate(data)


def create_plan(
    conn: sqlite3.Connection,
    *,
    parent_id: str,
    title: str,
    goals: Dict[str, Any],
    strategies: Dict[str, Any],
    timeline: Dict[str, Any],
    child_id: Optional[str] = None,
    family_id: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[List[str]] = None,
    ai_prompts: Optional[Dict[str, Any]] = None,
) -> ParentingPlan:
    """Insert a new plan. Plans always start as drafts with zero progress."""

    now = now_iso()
    plan_id = new_id()
    conn.execute(
        """
        INSERT INTO parenting_plans (
            id,
            parent_id,
            child_id,
            family_id,
            title,
            description,
            goals,
            strategies,
            timeline,
            status,
            progress,
            tags,
            ai_prompts,
            personalizations,
            completed_at,
            created_at,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, '{}', NULL, ?, ?)
        """,
        (
            plan_id,
            parent_id,
            child_id,
            family_id,
            title,
            description,
            dump_json(goals),
            dump_json(strategies),
            dump_json(timeline),
            PlanStatus.DRAFT.value,
            dump_json(tags or []),
            dump_json(ai_prompts),
            now,
            now,
        ),
    )
    return get_plan(conn, plan_id)


def get_plan(conn: sqlite3.Connection, plan_id: str) -> Optional[ParentingPlan]:
    row = conn.execute("SELECT * FROM parenting_plans WHERE id = ?", (plan_id,)).fetchone()
    return _row_to_plan(row)


def list_plans_for_parent(
    conn: sqlite3.Connection,
    parent_id: str,
    *,
    status: Optional[PlanStatus] = None,
) -> List[ParentingPlan]:
    query = "SELECT * FROM parenting_plans WHERE parent_id = ?"
    params: list = [parent_id]
    if status is not None:
        query += " AND status = ?"
        params.append(status.value)
    query += " ORDER BY updated_at DESC"
    return [_row_to_plan(row) for row in conn.execute(query, params).fetchall()]


def list_plans_for_child(
    conn: sqlite3.Connection,
    *,
    parent_id: str,
    child_id: str,
    status: Optional[PlanStatus] = None,
    tag: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[ParentingPlan]:
    query = "SELECT * FROM parenting_plans WHERE parent_id = ? AND child_id = ?"
    params: list = [parent_id, child_id]
    if status is not None:
        query += " AND status = ?"
        params.append(status.value)
    if tag is not None:
        query += " AND EXISTS (SELECT 1 FROM json_each(parenting_plans.tags) WHERE json_each.value = ?)"
        params.append(tag)
    query += " ORDER BY created_at DESC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)
    return [_row_to_plan(row) for row in conn.execute(query, params).fetchall()]


def save_plan(conn: sqlite3.Connection, plan: ParentingPlan) -> ParentingPlan:
    conn.execute(
        """
        UPDATE parenting_plans SET
            title = ?,
            description = ?,
            goals = ?,
            strategies = ?,
            timeline = ?,
            status = ?,
            progress = ?,
            tags = ?,
            ai_prompts = ?,
            personalizations = ?,
            completed_at = ?,
            updated_at = ?
        WHERE id = ?
        """,
        (
            plan.title,
            plan.description,
            dump_json(plan.goals),
            dump_json(plan.strategies),
            dump_json(plan.timeline),
            plan.status.value,
            plan.progress,
            dump_json(plan.tags),
            dump_json(plan.ai_prompts),
            dump_json(plan.personalizations),
            plan.completed_at.isoformat() if plan.completed_at else None,
            now_iso(),
            plan.id,
        ),
    )
    return get_plan(conn, plan.id)


def update_plan_progress(conn: sqlite3.Connection, plan: ParentingPlan, progress: int) -> ParentingPlan:
    """Record progress; reaching 100 completes the plan, anything lower makes it active."""

    progress = max(0, min(100, progress))
    if progress >= 100:
        updates = {"progress": 100, "status": PlanStatus.COMPLETED, "completed_at": plan.completed_at or utcnow()}
    else:
        updates = {"progress": progress, "status": PlanStatus.ACTIVE, "completed_at": None}
    return save_plan(conn, plan.model_copy(update=updates))
