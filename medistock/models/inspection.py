"""
Shared column sets for the two inspection stages.

QualityControl and WarehouseApproval go through the same lifecycle
(pending -> in_progress -> submitted -> approved | rejected) and carry the
same audit fields, so both records and both line tables are built from the
mixins below. Stage-specific columns live on the concrete models.
"""
import uuid
from datetime import datetime, timezone, date
from enum import Enum
from typing import Optional, List, Dict, Any

from sqlalchemy import String, DateTime, Date, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from medistock.db_types import UUIDType, JSONType


class InspectionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class QCResult(str, Enum):
    """Result vocabulary of QC lines and items."""
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"


class WarehouseResult(str, Enum):
    """Result vocabulary of warehouse approval lines and items."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class InspectionRecordMixin:
    """Header columns of an inspection record."""

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    # QC-YYYYMM-NNNN / WA-YYYYMM-NNNN
    record_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)

    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouses.id"),
        nullable=False,
        index=True
    )
    assigned_to: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id"),
        nullable=False
    )

    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(10), default="medium", nullable=False)

    # Submission
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id"), nullable=True
    )
    general_remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Approval
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id"), nullable=True
    )
    approval_remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Rejection
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id"), nullable=True
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.record_number} [{self.status}]>"


class InspectionLineMixin:
    """Per-product line of an inspection record."""

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, ForeignKey("products.id"), nullable=False)
    product_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    batch_number: Mapped[str] = mapped_column(String(50), nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    unit: Mapped[str] = mapped_column(String(20), default="pcs", nullable=False)

    # pending | passed | failed (QC), pending | approved | rejected (warehouse)
    result: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)

    # One entry per physical unit:
    # {item_id, status, reason, inspection_notes, inspected_at, inspected_by}
    item_details: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, default=list, nullable=False)

    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
