"""
Login and token issuing.

Access tokens carry the user's email and active role codes so clients can
render role-dependent views without a round trip; authorization itself is
always re-checked against the database on each request.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medistock.config import settings
from medistock.core.security import (
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_refresh_token,
)
from medistock.models.user import User


logger = logging.getLogger(__name__)

# (access token, refresh token, access lifetime in seconds)
TokenPair = Tuple[str, str, int]


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """Return the active user matching the credentials, or None."""
        user = await self.db.scalar(select(User).where(User.email == email.strip().lower()))

        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email)
            return None
        if not user.is_active:
            logger.warning("Login attempt by inactive user %s", user.email)
            return None
        return user

    async def create_tokens(self, user: User) -> TokenPair:
        """Issue a token pair and stamp the login time."""
        claims = {
            "email": user.email,
            "roles": sorted(role.code for role in user.roles),
        }
        pair = (
            create_access_token(subject=user.id, additional_claims=claims),
            create_refresh_token(subject=user.id),
            settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )

        user.last_login_at = datetime.now(timezone.utc)
        await self.db.commit()
        return pair

    async def refresh_tokens(self, refresh_token: str) -> Optional[TokenPair]:
        """Exchange a refresh token for a new pair. None if the token or user is no longer valid."""
        subject = verify_refresh_token(refresh_token)
        if subject is None:
            return None
        try:
            user_id = uuid.UUID(subject)
        except ValueError:
            return None

        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            logger.warning("Refresh rejected for user %s", subject)
            return None
        return await self.create_tokens(user)
