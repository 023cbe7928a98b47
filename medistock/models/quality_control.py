"""Quality control stage: inspection of a received invoice."""
import uuid
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import ForeignKey, Integer, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medistock.database import Base
from medistock.db_types import UUIDType
from medistock.models.inspection import InspectionRecordMixin, InspectionLineMixin

if TYPE_CHECKING:
    from medistock.models.invoice_receiving import InvoiceReceiving


class QualityControl(InspectionRecordMixin, Base):
    """QC record raised against one InvoiceReceiving."""
    __tablename__ = "quality_controls"
    __table_args__ = (
        # At most one live (non-rejected) QC per invoice
        Index(
            "uq_quality_controls_active_invoice",
            "invoice_receiving_id",
            unique=True,
            postgresql_where=text("status <> 'rejected'"),
            sqlite_where=text("status <> 'rejected'"),
        ),
    )

    invoice_receiving_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("invoice_receivings.id"),
        nullable=False,
        index=True
    )

    invoice: Mapped["InvoiceReceiving"] = relationship("InvoiceReceiving", lazy="selectin")
    lines: Mapped[List["QualityControlLine"]] = relationship(
        "QualityControlLine",
        back_populates="quality_control",
        cascade="all, delete-orphan",
        order_by="QualityControlLine.line_no",
        lazy="selectin"
    )

    @property
    def invoice_number(self) -> Optional[str]:
        return self.invoice.invoice_number if self.invoice else None


class QualityControlLine(InspectionLineMixin, Base):
    __tablename__ = "quality_control_lines"

    quality_control_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("quality_controls.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    received_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    passed_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    quality_control: Mapped["QualityControl"] = relationship("QualityControl", back_populates="lines")
