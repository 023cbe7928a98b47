"""Warehouse approval stage: acceptance of QC-passed goods into stock."""
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medistock.database import Base
from medistock.db_types import UUIDType
from medistock.models.inspection import InspectionRecordMixin, InspectionLineMixin

if TYPE_CHECKING:
    from medistock.models.invoice_receiving import InvoiceReceiving
    from medistock.models.quality_control import QualityControl


class WarehouseApproval(InspectionRecordMixin, Base):
    """Warehouse approval raised against one approved QualityControl."""
    __tablename__ = "warehouse_approvals"
    __table_args__ = (
        Index(
            "uq_warehouse_approvals_active_qc",
            "quality_control_id",
            unique=True,
            postgresql_where=text("status <> 'rejected'"),
            sqlite_where=text("status <> 'rejected'"),
        ),
    )

    quality_control_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("quality_controls.id"),
        nullable=False,
        index=True
    )
    # Kept for traceability back to the goods-in document
    invoice_receiving_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("invoice_receivings.id"),
        nullable=False,
        index=True
    )

    quality_control: Mapped["QualityControl"] = relationship("QualityControl", lazy="selectin")
    invoice: Mapped["InvoiceReceiving"] = relationship("InvoiceReceiving", lazy="selectin")
    lines: Mapped[List["WarehouseApprovalLine"]] = relationship(
        "WarehouseApprovalLine",
        back_populates="warehouse_approval",
        cascade="all, delete-orphan",
        order_by="WarehouseApprovalLine.line_no",
        lazy="selectin"
    )

    @property
    def qc_number(self) -> Optional[str]:
        return self.quality_control.record_number if self.quality_control else None

    @property
    def invoice_number(self) -> Optional[str]:
        return self.invoice.invoice_number if self.invoice else None


class WarehouseApprovalLine(InspectionLineMixin, Base):
    __tablename__ = "warehouse_approval_lines"

    warehouse_approval_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouse_approvals.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    quality_control_line_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("quality_control_lines.id"),
        nullable=True
    )

    qc_passed_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    approved_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rejected_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    storage_location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Set once the approved quantity has been posted to stock
    inventory_integrated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    inventory_integrated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    inventory_record_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("inventory_records.id"),
        nullable=True
    )

    warehouse_approval: Mapped["WarehouseApproval"] = relationship(
        "WarehouseApproval", back_populates="lines"
    )
