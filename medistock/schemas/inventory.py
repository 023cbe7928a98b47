"""Inventory ledger schemas."""
from datetime import datetime, date
from typing import Optional, Dict
from uuid import UUID

from pydantic import BaseModel, Field

from medistock.models.inventory import AdjustmentType, InventoryStatus
from medistock.schemas.base import BaseCreateSchema, BaseResponseSchema


class InventoryRecordCreate(BaseCreateSchema):
    """Manual stock seeding, outside the receiving workflow."""
    product_id: UUID
    warehouse_id: UUID
    batch_number: str = Field(..., min_length=1, max_length=50)
    quantity: int = Field(..., gt=0)
    expiry_date: Optional[date] = None
    storage_location: Optional[str] = Field(None, max_length=100)
    status: InventoryStatus = InventoryStatus.AVAILABLE
    remarks: Optional[str] = None


class StockReserve(BaseCreateSchema):
    quantity: int = Field(..., gt=0)
    reserved_for: Optional[str] = Field(None, max_length=200)
    remarks: Optional[str] = None


class StockRelease(BaseCreateSchema):
    quantity: int = Field(..., gt=0)
    remarks: Optional[str] = None


class StockAdjustment(BaseCreateSchema):
    """Stock count correction. remove never touches reserved units."""
    adjustment_type: AdjustmentType
    quantity: int = Field(..., gt=0)
    reason: Optional[str] = Field(None, max_length=200)
    remarks: Optional[str] = None


class InventoryRecordResponse(BaseResponseSchema):
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    batch_number: str
    expiry_date: Optional[date] = None
    current_stock: int
    reserved_stock: int
    available_stock: int
    status: str
    storage_location: Optional[str] = None
    last_stock_in_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class StockMovementResponse(BaseResponseSchema):
    id: UUID
    movement_number: str
    inventory_record_id: UUID
    movement_type: str
    quantity: int
    reference_type: Optional[str] = None
    reference_id: Optional[UUID] = None
    reference_line_id: Optional[UUID] = None
    remarks: Optional[str] = None
    performed_by: Optional[UUID] = None
    created_at: datetime


class InventorySummaryResponse(BaseModel):
    warehouse_id: Optional[UUID] = None
    total_records: int
    total_current_stock: int
    total_reserved_stock: int
    total_available_stock: int
    status_counts: Dict[str, int]
