import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medistock.database import Base
from medistock.db_types import UUIDType

if TYPE_CHECKING:
    from medistock.models.user import UserRole
    from medistock.models.permission import RolePermission


class RoleLevel(int, Enum):
    """
    Seniority of a role, lower is more senior.

    Only SUPER_ADMIN changes authorization: it passes every permission
    check without holding permission rows. The other levels are descriptive.
    """
    SUPER_ADMIN = 0
    DIRECTOR = 1
    HEAD = 2
    MANAGER = 3
    EXECUTIVE = 4


class Role(Base):
    """
    Named bundle of permissions, e.g. QC_INSPECTOR or WAREHOUSE_MANAGER.

    Deactivating a role withdraws its permissions from every holder
    without touching the user links.
    """
    __tablename__ = "roles"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # RoleLevel member name
    level: Mapped[str] = mapped_column(String(20), nullable=False, default=RoleLevel.EXECUTIVE.name)
    # Seeded roles; not meant to be edited by hand
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    user_roles: Mapped[List["UserRole"]] = relationship(
        "UserRole", back_populates="role", cascade="all, delete-orphan"
    )
    role_permissions: Mapped[List["RolePermission"]] = relationship(
        "RolePermission", back_populates="role", cascade="all, delete-orphan"
    )

    @property
    def is_super_admin(self) -> bool:
        return self.level == RoleLevel.SUPER_ADMIN.name

    def __repr__(self) -> str:
        return f"<Role {self.code} ({self.level})>"
