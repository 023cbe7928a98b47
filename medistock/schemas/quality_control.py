"""Quality control request and response schemas."""
from datetime import date
from typing import Optional, List
from uuid import UUID

from pydantic import Field

from medistock.models.inspection import InspectionPriority, QCResult
from medistock.schemas.base import BaseCreateSchema, BaseResponseSchema
from medistock.schemas.inspection import InspectionRecordResponse, ItemDetailResponse


class QCLineCreate(BaseCreateSchema):
    """Optional override of one invoice line. Unset fields come from the invoice."""
    product_id: UUID
    batch_number: Optional[str] = Field(None, max_length=50)
    expiry_date: Optional[date] = None
    unit: Optional[str] = Field(None, max_length=20)
    received_qty: Optional[int] = Field(None, gt=0)
    remarks: Optional[str] = None


class QualityControlCreate(BaseCreateSchema):
    invoice_receiving_id: UUID
    assigned_to: Optional[UUID] = None
    priority: InspectionPriority = InspectionPriority.MEDIUM
    general_remarks: Optional[str] = None
    products: Optional[List[QCLineCreate]] = None


class QCItemUpdate(BaseCreateSchema):
    item_id: str
    status: Optional[QCResult] = None
    reason: Optional[str] = None
    inspection_notes: Optional[str] = None


class QCLineUpdate(BaseCreateSchema):
    product_id: UUID
    result: Optional[QCResult] = None
    remarks: Optional[str] = None
    item_details: Optional[List[QCItemUpdate]] = None


class QualityControlUpdate(BaseCreateSchema):
    """Partial line results; only mentioned products and items change."""
    products: List[QCLineUpdate] = Field(..., min_length=1)


class QCLineResponse(BaseResponseSchema):
    id: UUID
    line_no: int
    product_id: UUID
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    batch_number: str
    expiry_date: Optional[date] = None
    unit: str
    received_qty: int
    passed_qty: int
    failed_qty: int
    result: str
    remarks: Optional[str] = None
    item_details: List[ItemDetailResponse] = []


class QualityControlResponse(InspectionRecordResponse):
    lines: List[QCLineResponse] = []
