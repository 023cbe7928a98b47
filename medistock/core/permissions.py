from typing import Set, Optional

from medistock.models.role import RoleLevel
from medistock.models.user import User


# Lower value = higher authority (SUPER_ADMIN=0 is highest)
LEVEL_ORDER = {level.name: level.value for level in RoleLevel}


def get_level_value(level: str) -> int:
    """Convert string level to numeric value for comparison.

    Unknown levels rank as EXECUTIVE.
    """
    return LEVEL_ORDER.get(str(level), RoleLevel.EXECUTIVE.value)


class PermissionChecker:
    """
    Authorization context for one caller.

    Holds the user together with the set of ``resource:action`` codes
    granted through their roles. Services receive it explicitly and never
    look up the caller on their own.
    """

    def __init__(self, user: User, user_permissions: Set[str]):
        self.user = user
        # Kept as a plain value; it must stay readable after a rollback expires the user
        self.user_id = user.id
        self.permissions = set(user_permissions)
        self.roles = user.roles
        self.highest_role_level = self._get_highest_role_level()

    def _get_highest_role_level(self) -> Optional[str]:
        """Get the highest (lowest number) role level for the user as string."""
        if not self.roles:
            return None

        return min((role.level for role in self.roles), key=get_level_value)

    def is_super_admin(self) -> bool:
        """Check if user is a SUPER_ADMIN."""
        return self.highest_role_level == RoleLevel.SUPER_ADMIN.name

    def has_permission(self, permission_code: str) -> bool:
        """
        Check if user has a specific permission.
        SUPER_ADMIN automatically has all permissions.

        Args:
            permission_code: The permission code to check (e.g., 'quality_control:view')
        """
        if self.is_super_admin():
            return True

        return permission_code in self.permissions
