from typing import Annotated, Optional, Set
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from medistock.database import get_db
from medistock.core.security import verify_access_token
from medistock.core.permissions import PermissionChecker
from medistock.models.user import User, UserRole
from medistock.models.role import RoleLevel
from medistock.models.permission import Permission, RolePermission


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme; a missing header is reported as 401 below
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates the JWT token and returns the user with roles loaded.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        logger.warning("Invalid user_id in token: %s", user_id)
        raise credentials_exception

    result = await db.execute(
        select(User)
        .options(selectinload(User.user_roles).selectinload(UserRole.role))
        .where(User.id == user_uuid)
    )
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning("User %s from token not found", user_id)
        raise credentials_exception

    if not user.is_active:
        logger.warning("Inactive user %s attempted access", user_id)
        raise credentials_exception

    return user


async def get_user_permissions(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Set[str]:
    """
    Get all permission codes for the current user.
    Aggregates permissions from all user's active roles.
    """
    # SUPER_ADMIN has all permissions; PermissionChecker handles it
    for role in user.roles:
        if role.level == RoleLevel.SUPER_ADMIN.name:
            return set()

    role_ids = [role.id for role in user.roles]
    if not role_ids:
        return set()

    result = await db.execute(
        select(Permission.code)
        .join(RolePermission, Permission.id == RolePermission.permission_id)
        .where(RolePermission.role_id.in_(role_ids))
        .where(Permission.is_active == True)  # noqa: E712
    )
    return {row[0] for row in result.all()}


async def get_permission_checker(
    user: Annotated[User, Depends(get_current_user)],
    permissions: Annotated[Set[str], Depends(get_user_permissions)]
) -> PermissionChecker:
    """
    Get a PermissionChecker instance for the current user.
    """
    return PermissionChecker(user, permissions)


def require_permissions(*required_permissions: str):
    """
    Dependency factory to require specific permissions.

    Usage:
        @router.get("/", dependencies=[Depends(require_permissions("quality_control:view"))])
        async def list_quality_controls():
            ...
    """
    async def permission_dependency(
        permission_checker: Annotated[PermissionChecker, Depends(get_permission_checker)]
    ):
        for permission in required_permissions:
            if not permission_checker.has_permission(permission):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Permission denied. Required: {permission}"
                )
        return True

    return permission_dependency


# Type aliases for cleaner endpoint signatures
CurrentUser = Annotated[User, Depends(get_current_user)]
DB = Annotated[AsyncSession, Depends(get_db)]
Permissions = Annotated[PermissionChecker, Depends(get_permission_checker)]
