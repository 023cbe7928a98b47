"""Notification schemas."""
from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import UUID

from pydantic import BaseModel

from medistock.schemas.base import BaseResponseSchema


class NotificationResponse(BaseResponseSchema):
    id: UUID
    user_id: UUID
    notification_type: str
    priority: str
    title: str
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    reference_number: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    items: List[NotificationResponse]
    total: int
    unread: int
    skip: int
    limit: int


class MarkAllReadResponse(BaseModel):
    updated: int
