"""API endpoints for the caller's own notifications."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from medistock.api.deps import DB, CurrentUser
from medistock.config import settings
from medistock.schemas.notifications import (
    NotificationResponse, NotificationListResponse, MarkAllReadResponse,
)
from medistock.services.notification_service import NotificationService

router = APIRouter()


@router.get("/my", response_model=NotificationListResponse)
async def get_my_notifications(
    db: DB,
    current_user: CurrentUser,
    is_read: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    """Get current user's notifications."""
    items, total, unread = await NotificationService(db).list_for_user(
        current_user.id, is_read=is_read, skip=skip, limit=limit
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(item) for item in items],
        total=total,
        unread=unread,
        skip=skip,
        limit=limit,
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(notification_id: UUID, db: DB, current_user: CurrentUser):
    """Mark a notification as read."""
    notification = await NotificationService(db).mark_read(notification_id, current_user.id)
    await db.commit()
    return notification


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(db: DB, current_user: CurrentUser):
    """Mark all of the current user's notifications as read."""
    updated = await NotificationService(db).mark_all_read(current_user.id)
    await db.commit()
    return MarkAllReadResponse(updated=updated)
