"""
In-app notification service.

Notifications are plain rows, one per recipient. Workflow services call
``notify`` after their primary change has committed; reading and marking
back are exposed through the /notifications endpoints.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Iterable, Tuple

from sqlalchemy import select, func, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from medistock.core.exceptions import NotFound
from medistock.models.notifications import Notification, NotificationPriority
from medistock.models.permission import Permission, RolePermission
from medistock.models.role import Role, RoleLevel
from medistock.models.user import User, UserRole


logger = logging.getLogger(__name__)


class NotificationService:
    """Create, list and acknowledge per-user notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(
        self,
        user_ids: Iterable[Optional[uuid.UUID]],
        notification_type: str,
        title: str,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        reference_number: Optional[str] = None,
        priority: str = NotificationPriority.MEDIUM.value,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        """Create one notification for each distinct, non-empty recipient."""
        recipients: List[uuid.UUID] = []
        for user_id in user_ids:
            if user_id is not None and user_id not in recipients:
                recipients.append(user_id)

        notifications = []
        for user_id in recipients:
            notification = Notification(
                user_id=user_id,
                notification_type=notification_type,
                priority=priority,
                title=title,
                message=message,
                entity_type=entity_type,
                entity_id=entity_id,
                reference_number=reference_number,
                extra_data=extra_data or {},
            )
            self.db.add(notification)
            notifications.append(notification)

        await self.db.flush()
        logger.debug("Queued %d %s notification(s)", len(notifications), notification_type)
        return notifications

    async def users_with_permission(self, permission_code: str) -> List[uuid.UUID]:
        """Active users holding ``permission_code`` through a role, plus super admins."""
        granted = (
            select(UserRole.user_id)
            .join(RolePermission, RolePermission.role_id == UserRole.role_id)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .join(Role, Role.id == UserRole.role_id)
            .where(Permission.code == permission_code)
            .where(Permission.is_active == True)  # noqa: E712
            .where(Role.is_active == True)  # noqa: E712
        )
        super_admins = (
            select(UserRole.user_id)
            .join(Role, Role.id == UserRole.role_id)
            .where(Role.level == RoleLevel.SUPER_ADMIN.name)
            .where(Role.is_active == True)  # noqa: E712
        )
        result = await self.db.execute(
            select(User.id)
            .where(User.is_active == True)  # noqa: E712
            .where(or_(User.id.in_(granted), User.id.in_(super_admins)))
            .order_by(User.created_at)
        )
        return [row[0] for row in result.all()]

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        is_read: Optional[bool] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Notification], int, int]:
        """Return (items, total, unread) for one user, newest first."""
        query = select(Notification).where(Notification.user_id == user_id)
        count_query = select(func.count(Notification.id)).where(Notification.user_id == user_id)

        if is_read is not None:
            query = query.where(Notification.is_read == is_read)
            count_query = count_query.where(Notification.is_read == is_read)

        total = (await self.db.execute(count_query)).scalar() or 0

        unread = (await self.db.execute(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id)
            .where(Notification.is_read == False)  # noqa: E712
        )).scalar() or 0

        query = query.order_by(Notification.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total, unread

    async def mark_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> Notification:
        """Mark one of the user's notifications as read."""
        result = await self.db.execute(
            select(Notification)
            .where(Notification.id == notification_id)
            .where(Notification.user_id == user_id)
        )
        notification = result.scalar_one_or_none()
        # Another user's notification is reported as missing
        if notification is None:
            raise NotFound("Notification not found")

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await self.db.flush()
        return notification

    async def mark_all_read(self, user_id: uuid.UUID) -> int:
        """Mark every unread notification of the user as read. Returns the count."""
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.is_read == False)  # noqa: E712
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
