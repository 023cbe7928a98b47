from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from medistock.api.deps import DB, CurrentUser, Permissions
from medistock.schemas.auth import LoginRequest, TokenResponse, CurrentUserResponse, RoleBrief
from medistock.services.auth_service import AuthService
from medistock.services.audit_service import AuditService

router = APIRouter(tags=["Authentication"])


class RefreshTokenRequest(BaseModel):
    refresh_token: str


@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, db: DB):
    """
    Authenticate user and return access/refresh tokens.
    """
    auth_service = AuthService(db)

    user = await auth_service.authenticate_user(data.email, data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token, refresh_token, expires_in = await auth_service.create_tokens(user)

    await AuditService(db).log(
        action="user_login",
        entity_type="user",
        entity_id=user.id,
        user_id=user.id,
        description=f"{user.email} logged in",
    )
    await db.commit()

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(data: RefreshTokenRequest, db: DB):
    """Exchange a refresh token for a new token pair."""
    tokens = await AuthService(db).refresh_tokens(data.refresh_token)
    if tokens is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token, refresh_token, expires_in = tokens
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
    )


@router.get("/me", response_model=CurrentUserResponse)
async def me(current_user: CurrentUser, checker: Permissions):
    """The authenticated user with their roles and permission codes."""
    return CurrentUserResponse(
        id=current_user.id,
        email=current_user.email,
        first_name=current_user.first_name,
        last_name=current_user.last_name,
        full_name=current_user.full_name,
        department=current_user.department,
        is_active=current_user.is_active,
        roles=[RoleBrief.model_validate(role) for role in current_user.roles],
        permissions=sorted(checker.permissions),
        is_super_admin=checker.is_super_admin(),
    )
