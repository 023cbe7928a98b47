"""
Warehouse Approval API Endpoints.

- Warehouse approvals raised against approved QC records
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
from medistock.schemas.warehouse_approval import (
    WarehouseApprovalCreate, WarehouseApprovalUpdate, WarehouseApprovalResponse,
)
from medistock.services.inspection_state_machine import InspectionStatus
from medistock.services.warehouse_approval_service import WarehouseApprovalService

router = APIRouter()


# ============================================================================
# LIST / CREATE / REPORTING
# ============================================================================

@router.get(
    "/",
    response_model=PageResponse[WarehouseApprovalResponse],
    dependencies=[Depends(require_permissions("warehouse_approval:view"))],
    summary="List Warehouse Approvals"
)
async def list_warehouse_approvals(
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
    """List warehouse approvals, newest first."""
    service = WarehouseApprovalService(db)
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
    return PageResponse[WarehouseApprovalResponse](
        items=[WarehouseApprovalResponse.model_validate(item) for item in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post(
    "/",
    response_model=WarehouseApprovalResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("warehouse_approval:create"))],
    summary="Create Warehouse Approval"
)
async def create_warehouse_approval(data: WarehouseApprovalCreate, db: DB, checker: Permissions):
    """Raise a warehouse approval against an approved QC record."""
    return await WarehouseApprovalService(db).create(data, checker)


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:view"))],
    summary="Warehouse Approval Dashboard"
)
async def get_dashboard(
    db: DB,
    timeframe_days: Optional[int] = Query(None, ge=1, le=365),
    warehouse_id: Optional[UUID] = None,
):
    return await WarehouseApprovalService(db).dashboard(timeframe_days, warehouse_id)


@router.get(
    "/workload",
    response_model=WorkloadResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:view"))],
    summary="Warehouse Approval Workload by Assignee"
)
async def get_workload(db: DB, scope: str = Query("active", pattern="^(active|all)$")):
    return await WarehouseApprovalService(db).workload(scope)


@router.get(
    "/statistics",
    response_model=StatisticsResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:view"))],
    summary="Warehouse Approval Statistics"
)
async def get_statistics(
    db: DB,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
):
    return await WarehouseApprovalService(db).statistics(date_from, date_to)


@router.post(
    "/bulk-assign",
    response_model=BulkAssignResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:manage"))],
    summary="Bulk Assign Warehouse Approvals"
)
async def bulk_assign(data: BulkAssignRequest, db: DB, checker: Permissions):
    """Assign several warehouse approvals at once; each id reports its own outcome."""
    return await WarehouseApprovalService(db).bulk_assign(data.ids, data.assigned_to, data.priority, checker)


# ============================================================================
# SINGLE RECORD
# ============================================================================

@router.get(
    "/{approval_id}",
    response_model=WarehouseApprovalResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:view"))],
    summary="Get Warehouse Approval"
)
async def get_warehouse_approval(approval_id: UUID, db: DB):
    return await WarehouseApprovalService(db).get(approval_id)


@router.put(
    "/{approval_id}",
    response_model=WarehouseApprovalResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:update"))],
    summary="Update Warehouse Approval Line Results"
)
async def update_warehouse_approval(approval_id: UUID, data: WarehouseApprovalUpdate, db: DB, checker: Permissions):
    """Merge line and item results into the record."""
    return await WarehouseApprovalService(db).update_line_results(approval_id, data.products, checker)


@router.post(
    "/{approval_id}/start",
    response_model=WarehouseApprovalResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:update"))],
    summary="Start Warehouse Inspection"
)
async def start_warehouse_approval(approval_id: UUID, db: DB, checker: Permissions):
    return await WarehouseApprovalService(db).start(approval_id, checker)


@router.post(
    "/{approval_id}/submit",
    response_model=WarehouseApprovalResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:submit"))],
    summary="Submit Warehouse Approval"
)
async def submit_warehouse_approval(approval_id: UUID, db: DB, checker: Permissions, data: Optional[SubmitRequest] = None):
    remarks = data.general_remarks if data else None
    return await WarehouseApprovalService(db).submit(approval_id, remarks, checker)


@router.post(
    "/{approval_id}/approve",
    response_model=WarehouseApprovalResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:approve"))],
    summary="Approve Warehouse Approval"
)
async def approve_warehouse_approval(approval_id: UUID, db: DB, checker: Permissions, data: Optional[ApproveRequest] = None):
    """Approve and post the approved quantities to inventory in one transaction."""
    remarks = data.approval_remarks if data else None
    return await WarehouseApprovalService(db).approve(approval_id, remarks, checker)


@router.post(
    "/{approval_id}/reject",
    response_model=WarehouseApprovalResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:approve"))],
    summary="Reject Warehouse Approval"
)
async def reject_warehouse_approval(approval_id: UUID, data: RejectRequest, db: DB, checker: Permissions):
    return await WarehouseApprovalService(db).reject(approval_id, data.rejection_reason, checker)


@router.post(
    "/{approval_id}/assign",
    response_model=WarehouseApprovalResponse,
    dependencies=[Depends(require_permissions("warehouse_approval:manage"))],
    summary="Assign Warehouse Approval"
)
async def assign_warehouse_approval(approval_id: UUID, data: AssignRequest, db: DB, checker: Permissions):
    return await WarehouseApprovalService(db).assign(approval_id, data.assigned_to, data.priority, checker)
