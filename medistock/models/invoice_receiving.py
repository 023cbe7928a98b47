"""
Invoice receiving models.

An InvoiceReceiving is the goods-in document a quality control record is
raised against. Its status fields are advanced by the QC and warehouse
approval workflows.
"""
import uuid
from datetime import datetime, timezone, date
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, DateTime, Date, ForeignKey, Integer, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medistock.database import Base
from medistock.db_types import UUIDType

if TYPE_CHECKING:
    from medistock.models.product import Product
    from medistock.models.warehouse import Warehouse


class ReceivingStatus(str, Enum):
    RECEIVED = "received"
    REJECTED = "rejected"
    COMPLETED = "completed"


class ReceivingWorkflowStatus(str, Enum):
    """Where the invoice is in the receiving pipeline."""
    RECEIVED = "received"
    QC_IN_PROGRESS = "qc_in_progress"
    QC_COMPLETED = "qc_completed"
    WAREHOUSE_PENDING = "warehouse_pending"
    INVENTORY_UPDATED = "inventory_updated"
    REJECTED = "rejected"


class ReceivingQCStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class InvoiceReceiving(Base):
    """Supplier invoice received at a warehouse."""
    __tablename__ = "invoice_receivings"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    invoice_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    purchase_order_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    supplier_name: Mapped[str] = mapped_column(String(200), nullable=False)

    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouses.id"),
        nullable=False,
        index=True
    )
    received_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    status: Mapped[str] = mapped_column(String(30), default=ReceivingStatus.RECEIVED.value, nullable=False)
    workflow_status: Mapped[str] = mapped_column(
        String(30),
        default=ReceivingWorkflowStatus.RECEIVED.value,
        nullable=False,
        index=True
    )
    qc_status: Mapped[str] = mapped_column(
        String(30),
        default=ReceivingQCStatus.PENDING.value,
        nullable=False
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    warehouse: Mapped["Warehouse"] = relationship("Warehouse")
    lines: Mapped[List["InvoiceReceivingLine"]] = relationship(
        "InvoiceReceivingLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceReceivingLine.line_no"
    )

    def __repr__(self):
        return f"<InvoiceReceiving {self.invoice_number}>"


class InvoiceReceivingLine(Base):
    """One product line of a received invoice."""
    __tablename__ = "invoice_receiving_lines"
    __table_args__ = (
        CheckConstraint("received_qty > 0", name="ck_invoice_line_received_qty_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    invoice_receiving_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("invoice_receivings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("products.id"), nullable=False)
    batch_number: Mapped[str] = mapped_column(String(50), nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    unit: Mapped[str] = mapped_column(String(20), default="pcs", nullable=False)
    received_qty: Mapped[int] = mapped_column(Integer, nullable=False)

    invoice: Mapped["InvoiceReceiving"] = relationship("InvoiceReceiving", back_populates="lines")
    product: Mapped["Product"] = relationship("Product", lazy="selectin")

    @property
    def product_code(self) -> Optional[str]:
        return self.product.code if self.product else None

    @property
    def product_name(self) -> Optional[str]:
        return self.product.name if self.product else None
