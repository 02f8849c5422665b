from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import AuthContext, get_auth_context
from ..db import get_connection, transaction
from ..errors import NotFoundError
from ..repositories import notifications as notification_repo
from ..schemas import envelope

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications_endpoint(
    unread: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with get_connection() as conn:
        notifications = notification_repo.list_notifications(
            conn,
            auth.user_id,
            unread_only=bool(unread),
            limit=limit,
        )
    return envelope({"notifications": notifications})


@router.post("/{notification_id}/read")
async def mark_notification_read_endpoint(
    notification_id: str,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with transaction() as conn:
        notification = notification_repo.get_notification(conn, notification_id)
        if notification is None or notification.user_id != auth.user_id:
            raise NotFoundError("Notification not found")
        notification = notification_repo.mark_read(conn, notification)
    return envelope({"notification": notification})
