from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from medistock.schemas.base import BaseResponseSchema


class LoginRequest(BaseModel):
    """Login request schema."""
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=6, description="User password")


class TokenResponse(BaseModel):
    """Token response schema."""
    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token expiration in seconds")


class RoleBrief(BaseResponseSchema):
    id: UUID
    code: str
    name: str
    level: str


class CurrentUserResponse(BaseResponseSchema):
    """The authenticated user with the permission codes granted to them."""
    id: UUID
    email: str
    first_name: str
    last_name: Optional[str] = None
    full_name: str
    department: Optional[str] = None
    is_active: bool
    roles: List[RoleBrief] = []
    permissions: List[str] = []
    is_super_admin: bool = False
