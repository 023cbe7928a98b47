"""Database models for in-app notifications."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from medistock.database import Base
from medistock.db_types import UUIDType, JSONType


class NotificationType(str, Enum):
    """Types of notifications."""
    QC_ASSIGNMENT = "qc_assignment"
    QC_APPROVED = "qc_approved"
    QC_REJECTED = "qc_rejected"
    WAREHOUSE_ASSIGNMENT = "warehouse_assignment"
    WAREHOUSE_APPROVED = "warehouse_approved"
    WAREHOUSE_REJECTED = "warehouse_rejected"
    APPROVAL_REQUIRED = "approval_required"
    INVENTORY_UPDATED = "inventory_updated"
    SYSTEM_ALERT = "system_alert"


class NotificationPriority(str, Enum):
    """Priority levels for notifications."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Notification(Base):
    """
    One notification addressed to one user.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        Index('ix_notifications_user_unread', 'user_id', 'is_read'),
        Index('ix_notifications_user_type', 'user_id', 'notification_type'),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    # Recipient
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    notification_type: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default=NotificationPriority.MEDIUM.value, nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Reference to related entity
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # e.g. quality_control
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    reference_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    extra_data: Mapped[Optional[dict]] = mapped_column(JSONType, default=dict, nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Notification {self.notification_type} -> {self.user_id}>"
