"""Warehouse approval request and response schemas."""
from datetime import date, datetime
from typing import Optional, List
from uuid import UUID

from pydantic import Field

from medistock.models.inspection import InspectionPriority, WarehouseResult
from medistock.schemas.base import BaseCreateSchema, BaseResponseSchema
from medistock.schemas.inspection import InspectionRecordResponse, ItemDetailResponse


class WALineCreate(BaseCreateSchema):
    """Optional override of one QC-passed line. Unset fields come from the QC line."""
    product_id: UUID
    batch_number: Optional[str] = Field(None, max_length=50)
    expiry_date: Optional[date] = None
    unit: Optional[str] = Field(None, max_length=20)
    qc_passed_qty: Optional[int] = Field(None, gt=0)
    storage_location: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = None


class WarehouseApprovalCreate(BaseCreateSchema):
    quality_control_id: UUID
    assigned_to: Optional[UUID] = None
    priority: InspectionPriority = InspectionPriority.MEDIUM
    general_remarks: Optional[str] = None
    products: Optional[List[WALineCreate]] = None


class WAItemUpdate(BaseCreateSchema):
    item_id: str
    status: Optional[WarehouseResult] = None
    reason: Optional[str] = None
    inspection_notes: Optional[str] = None


class WALineUpdate(BaseCreateSchema):
    product_id: UUID
    result: Optional[WarehouseResult] = None
    storage_location: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = None
    item_details: Optional[List[WAItemUpdate]] = None


class WarehouseApprovalUpdate(BaseCreateSchema):
    """Partial line results; only mentioned products and items change."""
    products: List[WALineUpdate] = Field(..., min_length=1)


class WALineResponse(BaseResponseSchema):
    id: UUID
    line_no: int
    product_id: UUID
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    quality_control_line_id: Optional[UUID] = None
    batch_number: str
    expiry_date: Optional[date] = None
    unit: str
    qc_passed_qty: int
    approved_qty: int
    rejected_qty: int
    storage_location: Optional[str] = None
    result: str
    remarks: Optional[str] = None
    inventory_integrated: bool
    inventory_integrated_at: Optional[datetime] = None
    inventory_record_id: Optional[UUID] = None
    item_details: List[ItemDetailResponse] = []


class WarehouseApprovalResponse(InspectionRecordResponse):
    quality_control_id: UUID
    qc_number: Optional[str] = None
    lines: List[WALineResponse] = []
