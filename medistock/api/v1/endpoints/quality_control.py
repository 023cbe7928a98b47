"""
Quality Control API Endpoints.

- QC records raised against received invoices
- Line result entry and the start / submit / approve / reject lifecycle
- Assignment, dashboard, workload and statistics
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from medistock.api.deps import DB, Permissions, require_permissions
from medistock.config import settings
from medistock.models.inspection import InspectionPriority
from medistock.schemas.base import PageResponse
from medistock.schemas.inspection import (
    SubmitRequest, ApproveRequest, RejectRequest, AssignRequest,
    BulkAssignRequest, BulkAssignResponse,
    DashboardResponse, WorkloadResponse, StatisticsResponse,
)
from medistock.schemas.quality_control import (
    QualityControlCreate, QualityControlUpdate, QualityControlResponse,
)
from medistock.services.inspection_state_machine import InspectionStatus
from medistock.services.quality_control_service import QualityControlService

router = APIRouter()


# ============================================================================
# LIST / CREATE / REPORTING
# ============================================================================

@router.get(
    "/",
    response_model=PageResponse[QualityControlResponse],
    dependencies=[Depends(require_permissions("quality_control:view"))],
    summary="List QC Records"
)
async def list_quality_controls(
    db: DB,
    status_filter: Optional[InspectionStatus] = Query(None, alias="status"),
    priority: Optional[InspectionPriority] = None,
    assigned_to: Optional[UUID] = None,
    warehouse_id: Optional[UUID] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    """List QC records, newest first."""
    service = QualityControlService(db)
    items, total = await service.list_records(
        status=status_filter.value if status_filter else None,
        priority=priority.value if priority else None,
        assigned_to=assigned_to,
        warehouse_id=warehouse_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
    return PageResponse[QualityControlResponse](
        items=[QualityControlResponse.model_validate(item) for item in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post(
    "/",
    response_model=QualityControlResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("quality_control:create"))],
    summary="Create QC Record"
)
async def create_quality_control(data: QualityControlCreate, db: DB, checker: Permissions):
    """Raise a QC record against a received invoice."""
    return await QualityControlService(db).create(data, checker)


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    dependencies=[Depends(require_permissions("quality_control:view"))],
    summary="QC Dashboard"
)
async def get_dashboard(
    db: DB,
    timeframe_days: Optional[int] = Query(None, ge=1, le=365),
    warehouse_id: Optional[UUID] = None,
):
    return await QualityControlService(db).dashboard(timeframe_days, warehouse_id)


@router.get(
    "/workload",
    response_model=WorkloadResponse,
    dependencies=[Depends(require_permissions("quality_control:view"))],
    summary="QC Workload by Assignee"
)
async def get_workload(db: DB, scope: str = Query("active", pattern="^(active|all)$")):
    return await QualityControlService(db).workload(scope)


@router.get(
    "/statistics",
    response_model=StatisticsResponse,
    dependencies=[Depends(require_permissions("quality_control:view"))],
    summary="QC Statistics"
)
async def get_statistics(
    db: DB,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
):
    return await QualityControlService(db).statistics(date_from, date_to)


@router.post(
    "/bulk-assign",
    response_model=BulkAssignResponse,
    dependencies=[Depends(require_permissions("quality_control:manage"))],
    summary="Bulk Assign QC Records"
)
async def bulk_assign(data: BulkAssignRequest, db: DB, checker: Permissions):
    """Assign several QC records at once; each id reports its own outcome."""
    return await QualityControlService(db).bulk_assign(data.ids, data.assigned_to, data.priority, checker)


# ============================================================================
# SINGLE RECORD
# ============================================================================

@router.get(
    "/{qc_id}",
    response_model=QualityControlResponse,
    dependencies=[Depends(require_permissions("quality_control:view"))],
    summary="Get QC Record"
)
async def get_quality_control(qc_id: UUID, db: DB):
    return await QualityControlService(db).get(qc_id)


@router.put(
    "/{qc_id}",
    response_model=QualityControlResponse,
    dependencies=[Depends(require_permissions("quality_control:update"))],
    summary="Update QC Line Results"
)
async def update_quality_control(qc_id: UUID, data: QualityControlUpdate, db: DB, checker: Permissions):
    """Merge line and item results into the record."""
    return await QualityControlService(db).update_line_results(qc_id, data.products, checker)


@router.post(
    "/{qc_id}/start",
    response_model=QualityControlResponse,
    dependencies=[Depends(require_permissions("quality_control:update"))],
    summary="Start QC Inspection"
)
async def start_quality_control(qc_id: UUID, db: DB, checker: Permissions):
    return await QualityControlService(db).start(qc_id, checker)


@router.post(
    "/{qc_id}/submit",
    response_model=QualityControlResponse,
    dependencies=[Depends(require_permissions("quality_control:submit"))],
    summary="Submit QC for Approval"
)
async def submit_quality_control(qc_id: UUID, db: DB, checker: Permissions, data: Optional[SubmitRequest] = None):
    remarks = data.general_remarks if data else None
    return await QualityControlService(db).submit(qc_id, remarks, checker)


@router.post(
    "/{qc_id}/approve",
    response_model=QualityControlResponse,
    dependencies=[Depends(require_permissions("quality_control:approve"))],
    summary="Approve QC"
)
async def approve_quality_control(qc_id: UUID, db: DB, checker: Permissions, data: Optional[ApproveRequest] = None):
    remarks = data.approval_remarks if data else None
    return await QualityControlService(db).approve(qc_id, remarks, checker)


@router.post(
    "/{qc_id}/reject",
    response_model=QualityControlResponse,
    dependencies=[Depends(require_permissions("quality_control:approve"))],
    summary="Reject QC"
)
async def reject_quality_control(qc_id: UUID, data: RejectRequest, db: DB, checker: Permissions):
    return await QualityControlService(db).reject(qc_id, data.rejection_reason, checker)


@router.post(
    "/{qc_id}/assign",
    response_model=QualityControlResponse,
    dependencies=[Depends(require_permissions("quality_control:manage"))],
    summary="Assign QC Record"
)
async def assign_quality_control(qc_id: UUID, data: AssignRequest, db: DB, checker: Permissions):
    return await QualityControlService(db).assign(qc_id, data.assigned_to, data.priority, checker)
