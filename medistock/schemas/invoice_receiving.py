"""Invoice receiving schemas."""
from datetime import datetime, date
from typing import Optional, List
from uuid import UUID

from pydantic import Field

from medistock.schemas.base import BaseCreateSchema, BaseResponseSchema


class InvoiceLineCreate(BaseCreateSchema):
    product_id: UUID
    batch_number: str = Field(..., min_length=1, max_length=50)
    expiry_date: Optional[date] = None
    unit: str = Field(default="pcs", max_length=20)
    received_qty: int = Field(..., gt=0)


class InvoiceReceivingCreate(BaseCreateSchema):
    invoice_number: str = Field(..., min_length=1, max_length=50)
    invoice_date: date
    purchase_order_number: Optional[str] = Field(None, max_length=50)
    supplier_name: str = Field(..., min_length=1, max_length=200)
    warehouse_id: UUID
    remarks: Optional[str] = None
    lines: List[InvoiceLineCreate] = Field(..., min_length=1)


class InvoiceLineResponse(BaseResponseSchema):
    id: UUID
    line_no: int
    product_id: UUID
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    batch_number: str
    expiry_date: Optional[date] = None
    unit: str
    received_qty: int


class InvoiceReceivingResponse(BaseResponseSchema):
    id: UUID
    invoice_number: str
    invoice_date: date
    purchase_order_number: Optional[str] = None
    supplier_name: str
    warehouse_id: UUID
    received_by: Optional[UUID] = None
    received_at: datetime
    status: str
    workflow_status: str
    qc_status: str
    remarks: Optional[str] = None
    lines: List[InvoiceLineResponse] = []
    created_at: datetime
    updated_at: datetime
