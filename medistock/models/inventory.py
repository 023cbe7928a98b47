"""Stock ledger models."""
import uuid
from datetime import datetime, timezone, date
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Date, ForeignKey, Integer, Text, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medistock.database import Base
from medistock.db_types import UUIDType


class InventoryStatus(str, Enum):
    """Stock status of an inventory record."""
    AVAILABLE = "available"
    RESERVED = "reserved"
    OUT_OF_STOCK = "out_of_stock"
    EXPIRED = "expired"
    QUARANTINED = "quarantined"


class StockMovementType(str, Enum):
    """Quantity is always positive; the type gives the direction."""
    INWARD = "inward"        # current_stock up
    OUTWARD = "outward"      # current_stock down
    RESERVE = "reserve"      # available moved to reserved
    RELEASE = "release"      # reserved moved back to available


class AdjustmentType(str, Enum):
    ADD = "add"
    REMOVE = "remove"


class InventoryRecord(Base):
    """
    Stock held for one (product, warehouse, batch).

    available_stock is always current_stock - reserved_stock; every write
    path adjusts both columns together.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", "batch_number", name="uq_inventory_product_warehouse_batch"),
        Index("ix_inventory_records_warehouse_status", "warehouse_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("warehouses.id"), nullable=False)
    batch_number: Mapped[str] = mapped_column(String(50), nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    current_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reserved_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    available_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[str] = mapped_column(String(20), default=InventoryStatus.AVAILABLE.value, nullable=False)
    storage_location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_stock_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self):
        return f"<InventoryRecord {self.product_id}/{self.batch_number}: {self.current_stock}>"


class StockMovement(Base):
    """Stock movement history. One row per posting, adjustment, reservation or release."""
    __tablename__ = "stock_movements"
    __table_args__ = (
        # A source line can be posted to stock only once
        UniqueConstraint(
            "reference_type", "reference_id", "reference_line_id",
            name="uq_stock_movements_reference"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    movement_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    inventory_record_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("inventory_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    movement_type: Mapped[str] = mapped_column(String(20), default=StockMovementType.INWARD.value, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Related document, e.g. warehouse_approval / <record id> / <line id>
    reference_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    reference_line_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    inventory_record: Mapped["InventoryRecord"] = relationship("InventoryRecord")

    def __repr__(self):
        return f"<StockMovement {self.movement_number}>"
