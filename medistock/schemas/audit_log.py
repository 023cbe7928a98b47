from datetime import datetime
from typing import Optional, Dict, Any
from uuid import UUID

from medistock.schemas.base import BaseResponseSchema


class AuditLogResponse(BaseResponseSchema):
    """Audit log entry."""
    id: UUID
    user_id: Optional[UUID] = None
    action: str
    entity_type: str
    entity_id: Optional[UUID] = None
    entity_number: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    description: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None
    created_at: datetime
