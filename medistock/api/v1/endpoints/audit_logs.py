from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from medistock.api.deps import DB, require_permissions
from medistock.config import settings
from medistock.schemas.audit_log import AuditLogResponse
from medistock.schemas.base import PageResponse
from medistock.services.audit_service import AuditService

router = APIRouter(tags=["Audit Logs"])


@router.get(
    "",
    response_model=PageResponse[AuditLogResponse],
    dependencies=[Depends(require_permissions("audit_logs:view"))]
)
async def list_audit_logs(
    db: DB,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    action: Optional[str] = None,
    user_id: Optional[UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    """
    Get audit logs with filtering.
    Requires: audit_logs:view permission
    """
    items, total = await AuditService(db).list_logs(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
    return PageResponse[AuditLogResponse](
        items=[AuditLogResponse.model_validate(item) for item in items],
        total=total,
        skip=skip,
        limit=limit,
    )
