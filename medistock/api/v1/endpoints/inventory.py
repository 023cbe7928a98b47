"""API endpoints for the inventory ledger."""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from medistock.api.deps import DB, Permissions, require_permissions
from medistock.config import settings
from medistock.models.inventory import InventoryStatus
from medistock.schemas.base import PageResponse
from medistock.schemas.inventory import (
    InventoryRecordCreate, InventoryRecordResponse,
    StockMovementResponse, InventorySummaryResponse,
    StockAdjustment, StockRelease, StockReserve,
)
from medistock.services.inventory_service import InventoryService

router = APIRouter()


@router.get(
    "/",
    response_model=PageResponse[InventoryRecordResponse],
    dependencies=[Depends(require_permissions("inventory:view"))],
    summary="List Inventory Records"
)
async def list_inventory(
    db: DB,
    product_id: Optional[UUID] = None,
    warehouse_id: Optional[UUID] = None,
    batch_number: Optional[str] = None,
    status_filter: Optional[InventoryStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    items, total = await InventoryService(db).list_records(
        product_id=product_id,
        warehouse_id=warehouse_id,
        batch_number=batch_number,
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=limit,
    )
    return PageResponse[InventoryRecordResponse](
        items=[InventoryRecordResponse.model_validate(item) for item in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/summary",
    response_model=InventorySummaryResponse,
    dependencies=[Depends(require_permissions("inventory:view"))],
    summary="Inventory Summary"
)
async def get_summary(db: DB, warehouse_id: Optional[UUID] = None):
    return await InventoryService(db).summary(warehouse_id)


@router.post(
    "/",
    response_model=InventoryRecordResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("inventory:create"))],
    summary="Create Inventory Record"
)
async def create_inventory(data: InventoryRecordCreate, db: DB, checker: Permissions):
    """Seed stock for a batch by hand, outside the receiving workflow."""
    service = InventoryService(db)
    record = await service.create_record(data.model_dump(), checker)
    await db.commit()
    return await service.get_record(record.id)


@router.get(
    "/{record_id}",
    response_model=InventoryRecordResponse,
    dependencies=[Depends(require_permissions("inventory:view"))],
    summary="Get Inventory Record"
)
async def get_inventory(record_id: UUID, db: DB):
    return await InventoryService(db).get_record(record_id)


@router.get(
    "/{record_id}/movements",
    response_model=List[StockMovementResponse],
    dependencies=[Depends(require_permissions("inventory:view"))],
    summary="Stock Movements of a Record"
)
async def list_movements(record_id: UUID, db: DB):
    return await InventoryService(db).list_movements(record_id)


@router.post(
    "/{record_id}/reserve",
    response_model=InventoryRecordResponse,
    dependencies=[Depends(require_permissions("inventory:update"))],
    summary="Reserve Stock"
)
async def reserve_stock(record_id: UUID, data: StockReserve, db: DB, checker: Permissions):
    record = await InventoryService(db).reserve(
        record_id, data.quantity, checker, reserved_for=data.reserved_for, remarks=data.remarks
    )
    await db.commit()
    return record


@router.post(
    "/{record_id}/release",
    response_model=InventoryRecordResponse,
    dependencies=[Depends(require_permissions("inventory:update"))],
    summary="Release Reserved Stock"
)
async def release_stock(record_id: UUID, data: StockRelease, db: DB, checker: Permissions):
    record = await InventoryService(db).release(record_id, data.quantity, checker, remarks=data.remarks)
    await db.commit()
    return record


@router.post(
    "/{record_id}/adjust",
    response_model=InventoryRecordResponse,
    dependencies=[Depends(require_permissions("inventory:update"))],
    summary="Adjust Stock"
)
async def adjust_stock(record_id: UUID, data: StockAdjustment, db: DB, checker: Permissions):
    """Add or remove units after a stock count or damage write-off."""
    record = await InventoryService(db).adjust(
        record_id, data.adjustment_type.value, data.quantity, checker,
        reason=data.reason, remarks=data.remarks,
    )
    await db.commit()
    return record
