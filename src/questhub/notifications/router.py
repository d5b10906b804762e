"""Notification API endpoints. Every route is scoped to the caller's own inbox."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.actions import action_response, run_action
from questhub.auth.dependencies import get_current_principal
from questhub.auth.principal import Principal
from questhub.config import get_settings
from questhub.database import get_session
from questhub.notifications import service
from questhub.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """List the caller's notifications (paginated)."""
    per_page = per_page or get_settings().notifications_page_size
    notifications, total = await service.get_notifications(db, principal.user_id, page, per_page)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def get_unread_notification_count(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    count = await service.get_unread_count(db, principal.user_id)
    return UnreadCountResponse(unread_count=count)


@router.post("/notifications/read-all")
async def mark_all_read(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    async def op():
        return {"updated": await service.mark_all_as_read(db, principal.user_id)}

    result = await run_action(db, "mark_all_notifications_read", op, "Notifications marked as read.")
    return action_response(result)


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    async def op():
        await service.mark_as_read(db, principal.user_id, notification_id)
        return {"notification_id": notification_id}

    result = await run_action(db, "mark_notification_read", op, "Notification marked as read.")
    return action_response(result)


@router.delete("/notifications/read")
async def delete_read_notifications(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    async def op():
        return {"deleted": await service.delete_read(db, principal.user_id)}

    result = await run_action(db, "delete_read_notifications", op, "Read notifications deleted.")
    return action_response(result)


@router.delete("/notifications/{notification_id}")
async def delete_notification(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    async def op():
        await service.delete_notification(db, principal.user_id, notification_id)
        return {"notification_id": notification_id}

    result = await run_action(db, "delete_notification", op, "Notification deleted.")
    return action_response(result)
