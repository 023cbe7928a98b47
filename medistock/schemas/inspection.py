"""
Schemas shared by the quality control and warehouse approval endpoints.

Stage-specific line shapes live in quality_control.py and
warehouse_approval.py; everything that does not depend on the result
vocabulary is defined here once.
"""
from datetime import datetime
from typing import Optional, List, Dict
from uuid import UUID

from pydantic import BaseModel, Field

from medistock.models.inspection import InspectionPriority
from medistock.schemas.base import BaseCreateSchema, BaseResponseSchema


class ItemDetailResponse(BaseModel):
    """Inspection state of one physical unit."""
    item_id: str
    status: str
    reason: Optional[str] = None
    inspection_notes: Optional[str] = None
    inspected_at: Optional[datetime] = None
    inspected_by: Optional[UUID] = None


class InspectionRecordResponse(BaseResponseSchema):
    """Header fields common to both stages."""
    id: UUID
    record_number: str
    warehouse_id: UUID
    assigned_to: UUID
    created_by: UUID
    status: str
    priority: str
    invoice_receiving_id: UUID
    invoice_number: Optional[str] = None

    submitted_at: Optional[datetime] = None
    submitted_by: Optional[UUID] = None
    general_remarks: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[UUID] = None
    approval_remarks: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[UUID] = None
    rejection_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime


# ============================================================================
# ACTION REQUESTS
# ============================================================================

class SubmitRequest(BaseCreateSchema):
    general_remarks: Optional[str] = None


class ApproveRequest(BaseCreateSchema):
    approval_remarks: Optional[str] = None


class RejectRequest(BaseCreateSchema):
    # Checked for blankness by the service so the message is consistent
    rejection_reason: Optional[str] = None


class AssignRequest(BaseCreateSchema):
    assigned_to: UUID
    priority: Optional[InspectionPriority] = None


class BulkAssignRequest(BaseCreateSchema):
    ids: List[UUID]
    assigned_to: UUID
    priority: Optional[InspectionPriority] = None


class BulkAssignItemResult(BaseModel):
    id: UUID
    success: bool
    message: str


class BulkAssignResponse(BaseModel):
    requested: int
    assigned: int
    failed: int
    results: List[BulkAssignItemResult]


# ============================================================================
# REPORTING
# ============================================================================

class RecentRecord(BaseResponseSchema):
    id: UUID
    record_number: str
    status: str
    priority: str
    assigned_to: UUID
    updated_at: datetime


class DashboardResponse(BaseModel):
    timeframe_days: int
    warehouse_id: Optional[UUID] = None
    total_records: int
    status_counts: Dict[str, int]
    # total plus one key per line result, e.g. passed / failed / pending
    line_counts: Dict[str, int]
    recent: List[RecentRecord]


class WorkloadEntry(BaseModel):
    user_id: UUID
    user_name: Optional[str] = None
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    submitted: int = 0
    high: int = 0
    urgent: int = 0


class WorkloadResponse(BaseModel):
    scope: str
    assignees: List[WorkloadEntry]


class ProcessingTime(BaseModel):
    """Hours from creation to submission, over approved records."""
    sample_size: int = 0
    avg_hours: Optional[float] = None
    min_hours: Optional[float] = None
    max_hours: Optional[float] = None


class StatisticsResponse(BaseModel):
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    total_records: int
    status_breakdown: Dict[str, int]
    priority_breakdown: Dict[str, int]
    processing_time: ProcessingTime = Field(default_factory=ProcessingTime)
