"""Inventory ledger: stock records keyed by (product, warehouse, batch)."""
import logging
from dataclasses import dataclass
from typing import Optional, List, Tuple, Dict
from datetime import datetime, timezone, date
import uuid

from sqlalchemy import select, func, update, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from medistock.core.exceptions import DuplicateRecord, NotFound, ValidationError
from medistock.core.permissions import PermissionChecker
from medistock.models.inventory import (
    AdjustmentType, InventoryRecord, InventoryStatus,
    StockMovement, StockMovementType,
)
from medistock.models.product import Product
from medistock.models.warehouse import Warehouse
from medistock.services.audit_service import AuditService


logger = logging.getLogger(__name__)


def _stock_status(current, available):
    """
    Status after a quantity change, as a SQL expression over the new values.

    Expired and quarantined stock keeps its status whatever the quantities.
    """
    return case(
        (
            InventoryRecord.status.in_([InventoryStatus.EXPIRED.value, InventoryStatus.QUARANTINED.value]),
            InventoryRecord.status,
        ),
        (current <= 0, InventoryStatus.OUT_OF_STOCK.value),
        (available <= 0, InventoryStatus.RESERVED.value),
        else_=InventoryStatus.AVAILABLE.value,
    )


def _movement_number() -> str:
    """MOV-YYYYMMDD-HHMMSSffffff-XXXXXX, sortable by time and free of any counter."""
    now = datetime.now(timezone.utc)
    return f"MOV-{now:%Y%m%d}-{now:%H%M%S%f}-{uuid.uuid4().hex[:6].upper()}"


@dataclass(frozen=True)
class PostingReference:
    """Source document line a posting comes from."""
    reference_type: str
    reference_id: uuid.UUID
    reference_line_id: Optional[uuid.UUID] = None


class InventoryService:
    """Service for stock ledger operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== POSTING ====================

    async def post(
        self,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        batch_number: str,
        quantity: int,
        expiry_date: Optional[date] = None,
        storage_location: Optional[str] = None,
        performed_by: Optional[uuid.UUID] = None,
        reference: Optional[PostingReference] = None,
        remarks: Optional[str] = None,
    ) -> InventoryRecord:
        """
        Add ``quantity`` units to the stock of one batch.

        The record is incremented in place when it exists and created
        otherwise. A posting carrying a ``reference`` is applied at most
        once; repeating it returns the record untouched.

        Runs inside the caller's transaction. Nothing is committed here.
        """
        if quantity is None or quantity <= 0:
            raise ValidationError("Posting quantity must be greater than zero")
        if not batch_number:
            raise ValidationError("Batch number is required for posting")

        if reference is not None:
            existing = await self._find_movement(reference)
            if existing is not None:
                logger.info(
                    "Posting for %s %s line %s already applied, skipping",
                    reference.reference_type, reference.reference_id, reference.reference_line_id,
                )
                return await self.get_record(existing.inventory_record_id)

        try:
            async with self.db.begin_nested():
                record_id = await self._apply_quantity(
                    product_id, warehouse_id, batch_number, quantity, expiry_date, storage_location
                )
                movement = StockMovement(
                    movement_number=_movement_number(),
                    inventory_record_id=record_id,
                    movement_type=StockMovementType.INWARD.value,
                    quantity=quantity,
                    reference_type=reference.reference_type if reference else None,
                    reference_id=reference.reference_id if reference else None,
                    reference_line_id=reference.reference_line_id if reference else None,
                    remarks=remarks,
                    performed_by=performed_by,
                )
                self.db.add(movement)
                await self.db.flush()
        except IntegrityError:
            # Lost a race against an identical posting
            if reference is None:
                raise
            existing = await self._find_movement(reference)
            if existing is None:
                raise
            return await self.get_record(existing.inventory_record_id)

        record = await self.get_record(record_id)
        logger.info(
            "Posted %d of product %s batch %s to warehouse %s (stock now %d)",
            quantity, product_id, batch_number, warehouse_id, record.current_stock,
        )
        return record

    async def _apply_quantity(
        self,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        batch_number: str,
        quantity: int,
        expiry_date: Optional[date],
        storage_location: Optional[str],
    ) -> uuid.UUID:
        """Increment the keyed record, creating it first when missing."""
        record_id = await self._increment(
            product_id, warehouse_id, batch_number, quantity, expiry_date, storage_location
        )
        if record_id is not None:
            return record_id

        now = datetime.now(timezone.utc)
        record = InventoryRecord(
            product_id=product_id,
            warehouse_id=warehouse_id,
            batch_number=batch_number,
            expiry_date=expiry_date,
            current_stock=quantity,
            reserved_stock=0,
            available_stock=quantity,
            status=InventoryStatus.AVAILABLE.value,
            storage_location=storage_location,
            last_stock_in_at=now,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(record)
                await self.db.flush()
            return record.id
        except IntegrityError:
            # A concurrent posting created the row first; the savepoint
            # rollback already discarded our pending insert
            logger.info("Inventory record for batch %s created concurrently, retrying increment", batch_number)

        record_id = await self._increment(
            product_id, warehouse_id, batch_number, quantity, expiry_date, storage_location
        )
        if record_id is None:
            raise RuntimeError("Inventory record vanished while posting")
        return record_id

    async def _increment(
        self,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        batch_number: str,
        quantity: int,
        expiry_date: Optional[date],
        storage_location: Optional[str],
    ) -> Optional[uuid.UUID]:
        """Atomic add on an existing record. Returns its id, or None when absent."""
        key = (
            InventoryRecord.product_id == product_id,
            InventoryRecord.warehouse_id == warehouse_id,
            InventoryRecord.batch_number == batch_number,
        )
        now = datetime.now(timezone.utc)
        current = InventoryRecord.current_stock + quantity
        available = InventoryRecord.available_stock + quantity
        values = {
            "current_stock": current,
            "available_stock": available,
            "status": _stock_status(current, available),
            "last_stock_in_at": now,
            "updated_at": now,
        }
        if storage_location:
            values["storage_location"] = storage_location
        if expiry_date:
            values["expiry_date"] = func.coalesce(InventoryRecord.expiry_date, expiry_date)

        result = await self.db.execute(
            update(InventoryRecord)
            .where(*key)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            return None

        return await self.db.scalar(select(InventoryRecord.id).where(*key))

    async def _find_movement(self, reference: PostingReference) -> Optional[StockMovement]:
        query = select(StockMovement).where(
            StockMovement.reference_type == reference.reference_type,
            StockMovement.reference_id == reference.reference_id,
        )
        if reference.reference_line_id is None:
            query = query.where(StockMovement.reference_line_id.is_(None))
        else:
            query = query.where(StockMovement.reference_line_id == reference.reference_line_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none()

    # ==================== RESERVATIONS AND ADJUSTMENTS ====================

    async def reserve(
        self,
        record_id: uuid.UUID,
        quantity: int,
        checker: PermissionChecker,
        reserved_for: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> InventoryRecord:
        """Move ``quantity`` units from available to reserved."""
        return await self._change_stock(
            record_id, quantity, checker,
            movement_type=StockMovementType.RESERVE,
            reserved_delta=quantity,
            guard=InventoryRecord.available_stock >= quantity,
            shortfall="Insufficient stock available for reservation",
            reference_type="reservation",
            remarks=" - ".join(part for part in (reserved_for, remarks) if part) or None,
        )

    async def release(
        self,
        record_id: uuid.UUID,
        quantity: int,
        checker: PermissionChecker,
        remarks: Optional[str] = None,
    ) -> InventoryRecord:
        """Return ``quantity`` reserved units to available stock."""
        return await self._change_stock(
            record_id, quantity, checker,
            movement_type=StockMovementType.RELEASE,
            reserved_delta=-quantity,
            guard=InventoryRecord.reserved_stock >= quantity,
            shortfall="Cannot release more than is reserved",
            reference_type="reservation",
            remarks=remarks,
        )

    async def adjust(
        self,
        record_id: uuid.UUID,
        adjustment_type: str,
        quantity: int,
        checker: PermissionChecker,
        reason: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> InventoryRecord:
        """
        Add or remove stock outside the receiving workflow, e.g. after a count.

        Removal only takes unreserved units.
        """
        try:
            adjustment = AdjustmentType(adjustment_type)
        except ValueError:
            raise ValidationError("Invalid adjustment type")

        note = " - ".join(part for part in (reason or f"Stock {adjustment.value}", remarks) if part)
        if adjustment is AdjustmentType.ADD:
            return await self._change_stock(
                record_id, quantity, checker,
                movement_type=StockMovementType.INWARD,
                current_delta=quantity,
                reference_type="adjustment",
                remarks=note,
            )
        return await self._change_stock(
            record_id, quantity, checker,
            movement_type=StockMovementType.OUTWARD,
            current_delta=-quantity,
            guard=InventoryRecord.available_stock >= quantity,
            shortfall="Insufficient stock available",
            reference_type="adjustment",
            remarks=note,
        )

    async def _change_stock(
        self,
        record_id: uuid.UUID,
        quantity: int,
        checker: PermissionChecker,
        movement_type: StockMovementType,
        current_delta: int = 0,
        reserved_delta: int = 0,
        guard=None,
        shortfall: str = "",
        reference_type: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> InventoryRecord:
        """
        Apply one guarded quantity change with its movement and audit entry.

        The guard is part of the UPDATE, so two concurrent changes cannot
        together take more than the record holds. Nothing is committed here.
        """
        if quantity is None or quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")

        before = await self.get_record(record_id)
        old_values = {
            "current_stock": before.current_stock,
            "reserved_stock": before.reserved_stock,
            "available_stock": before.available_stock,
            "status": before.status,
        }

        now = datetime.now(timezone.utc)
        current = InventoryRecord.current_stock + current_delta
        reserved = InventoryRecord.reserved_stock + reserved_delta
        available = current - reserved
        values = {
            "current_stock": current,
            "reserved_stock": reserved,
            "available_stock": available,
            "status": _stock_status(current, available),
            "updated_at": now,
        }
        if current_delta > 0:
            values["last_stock_in_at"] = now

        query = update(InventoryRecord).where(InventoryRecord.id == record_id)
        if guard is not None:
            query = query.where(guard)
        result = await self.db.execute(query.values(**values).execution_options(synchronize_session=False))
        if not result.rowcount:
            latest = await self.get_record(record_id)
            raise ValidationError(shortfall, {
                "available_stock": latest.available_stock,
                "reserved_stock": latest.reserved_stock,
                "requested": quantity,
            })

        self.db.add(StockMovement(
            movement_number=_movement_number(),
            inventory_record_id=record_id,
            movement_type=movement_type.value,
            quantity=quantity,
            reference_type=reference_type,
            remarks=remarks,
            performed_by=checker.user_id,
        ))
        await self.db.flush()

        record = await self.get_record(record_id)
        new_values = {
            "current_stock": record.current_stock,
            "reserved_stock": record.reserved_stock,
            "available_stock": record.available_stock,
            "status": record.status,
        }
        await AuditService(self.db).log(
            action=f"inventory_{movement_type.value}",
            entity_type="inventory",
            entity_id=record.id,
            user_id=checker.user_id,
            old_values=old_values,
            new_values=new_values,
            description=f"{movement_type.value.capitalize()} {quantity} of batch {record.batch_number}",
        )
        logger.info(
            "%s of %d on inventory %s by %s (available %d, reserved %d)",
            movement_type.value, quantity, record.id, checker.user_id,
            record.available_stock, record.reserved_stock,
        )
        return record

    # ==================== MANUAL RECORDS ====================

    async def create_record(self, data: dict, checker: PermissionChecker) -> InventoryRecord:
        """
        Seed a stock record by hand.

        Fails when a record for the same (product, warehouse, batch) exists;
        adding to existing stock goes through receiving instead.
        """
        product = await self.db.get(Product, data["product_id"])
        if product is None:
            raise ValidationError("Product not found")
        warehouse = await self.db.get(Warehouse, data["warehouse_id"])
        if warehouse is None:
            raise ValidationError("Warehouse not found")

        existing = await self.db.scalar(
            select(InventoryRecord.id).where(
                InventoryRecord.product_id == data["product_id"],
                InventoryRecord.warehouse_id == data["warehouse_id"],
                InventoryRecord.batch_number == data["batch_number"],
            )
        )
        if existing is not None:
            raise DuplicateRecord(
                f"Inventory for batch {data['batch_number']} of {product.code} already exists in this warehouse"
            )

        quantity = data["quantity"]
        status = data.get("status") or InventoryStatus.AVAILABLE.value
        record = InventoryRecord(
            product_id=data["product_id"],
            warehouse_id=data["warehouse_id"],
            batch_number=data["batch_number"],
            expiry_date=data.get("expiry_date"),
            current_stock=quantity,
            reserved_stock=0,
            available_stock=quantity,
            status=status.value if isinstance(status, InventoryStatus) else status,
            storage_location=data.get("storage_location"),
            last_stock_in_at=datetime.now(timezone.utc),
        )
        try:
            async with self.db.begin_nested():
                self.db.add(record)
                await self.db.flush()
        except IntegrityError:
            raise DuplicateRecord(
                f"Inventory for batch {data['batch_number']} of {product.code} already exists in this warehouse"
            )

        self.db.add(StockMovement(
            movement_number=_movement_number(),
            inventory_record_id=record.id,
            movement_type=StockMovementType.INWARD.value,
            quantity=quantity,
            reference_type="manual",
            remarks=data.get("remarks") or "Manual stock entry",
            performed_by=checker.user_id,
        ))

        await AuditService(self.db).log(
            action="inventory_create",
            entity_type="inventory",
            entity_id=record.id,
            user_id=checker.user_id,
            new_values={
                "product_id": str(record.product_id),
                "warehouse_id": str(record.warehouse_id),
                "batch_number": record.batch_number,
                "quantity": quantity,
            },
            description=f"Manual stock entry of {quantity} for {product.code} batch {record.batch_number}",
        )
        logger.info("Manual inventory record %s created by %s", record.id, checker.user_id)
        return record

    # ==================== QUERIES ====================

    async def get_record(self, record_id: uuid.UUID) -> InventoryRecord:
        result = await self.db.execute(
            select(InventoryRecord)
            .where(InventoryRecord.id == record_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFound("Inventory record not found")
        return record

    async def list_records(
        self,
        product_id: Optional[uuid.UUID] = None,
        warehouse_id: Optional[uuid.UUID] = None,
        batch_number: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[InventoryRecord], int]:
        """List inventory records with filters."""
        conditions = []
        if product_id:
            conditions.append(InventoryRecord.product_id == product_id)
        if warehouse_id:
            conditions.append(InventoryRecord.warehouse_id == warehouse_id)
        if batch_number:
            conditions.append(InventoryRecord.batch_number == batch_number)
        if status:
            conditions.append(InventoryRecord.status == status)

        count_query = select(func.count(InventoryRecord.id))
        query = select(InventoryRecord).execution_options(populate_existing=True)
        if conditions:
            count_query = count_query.where(*conditions)
            query = query.where(*conditions)

        total = await self.db.scalar(count_query) or 0
        query = query.order_by(InventoryRecord.updated_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def list_movements(self, record_id: uuid.UUID) -> List[StockMovement]:
        """Movement history of one record, oldest first."""
        await self.get_record(record_id)
        result = await self.db.execute(
            select(StockMovement)
            .where(StockMovement.inventory_record_id == record_id)
            .order_by(StockMovement.created_at, StockMovement.movement_number)
        )
        return list(result.scalars().all())

    # ==================== STATISTICS ====================

    async def summary(self, warehouse_id: Optional[uuid.UUID] = None) -> Dict:
        """Totals across records, optionally for one warehouse."""
        totals_query = select(
            func.count(InventoryRecord.id),
            func.coalesce(func.sum(InventoryRecord.current_stock), 0),
            func.coalesce(func.sum(InventoryRecord.reserved_stock), 0),
            func.coalesce(func.sum(InventoryRecord.available_stock), 0),
        )
        status_query = select(InventoryRecord.status, func.count(InventoryRecord.id)).group_by(
            InventoryRecord.status
        )
        if warehouse_id:
            totals_query = totals_query.where(InventoryRecord.warehouse_id == warehouse_id)
            status_query = status_query.where(InventoryRecord.warehouse_id == warehouse_id)

        count, current, reserved, available = (await self.db.execute(totals_query)).one()
        status_counts = {status.value: 0 for status in InventoryStatus}
        for status, status_count in (await self.db.execute(status_query)).all():
            status_counts[status] = status_count

        return {
            "warehouse_id": warehouse_id,
            "total_records": count,
            "total_current_stock": int(current),
            "total_reserved_stock": int(reserved),
            "total_available_stock": int(available),
            "status_counts": status_counts,
        }
