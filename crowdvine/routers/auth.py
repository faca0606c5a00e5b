"""Authentication endpoints with fastapi-users integration."""

import logging
from datetime import datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field
from slowapi.util import get_remote_address

from crowdvine.auth import UserCreate, UserRead, UserUpdate, auth_backend, fastapi_users
from crowdvine.config import settings
from crowdvine.models.base import utcnow
from crowdvine.models.user import Address, User
from crowdvine.services.analytics import posthog_service
from crowdvine.services.auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    RequireAuth,
    authenticate_user,
    create_access_token,
    get_password_hash,
    revoke_token,
    verify_password,
)
from crowdvine.services.membership import get_membership

from ._common import limiter

router = APIRouter()
security_logger = logging.getLogger("crowdvine.security")


# fastapi-users routers: /login, /logout (jwt), /register, /forgot-password,
# /reset-password, /request-verify-token, /verify
router.include_router(fastapi_users.get_auth_router(auth_backend), prefix="")

if settings.registration_enabled:
    router.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix="")

router.include_router(fastapi_users.get_reset_password_router(), prefix="")

if settings.email_verification_required:
    router.include_router(fastapi_users.get_verify_router(UserRead), prefix="")


class UserResponse(BaseModel):
    """Current user with role and membership level."""

    id: str
    email: str
    full_name: str | None
    role: str
    is_active: bool
    is_admin: bool
    is_verified: bool
    producer_id: str | None
    membership_level: str | None
    address: Address | None
    created_at: datetime
    last_login: datetime | None

    @classmethod
    async def from_user(cls, user: User) -> "UserResponse":
        membership = await get_membership(user.id)
        return cls(
            id=str(user.id),
            email=user.email,
            full_name=user.full_name,
            role=user.role.value,
            is_active=user.is_active,
            is_admin=user.is_admin,
            is_verified=user.is_verified,
            producer_id=str(user.producer_id) if user.producer_id else None,
            membership_level=membership.level.value if membership else None,
            address=user.address,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class ProfileUpdate(UserUpdate):
    pass


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = ACCESS_TOKEN_EXPIRE_MINUTES * 60  # seconds


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    return auth_header[7:] if auth_header.startswith("Bearer ") else None


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: RequireAuth) -> UserResponse:
    """The authenticated user's account, role and membership level."""
    return await UserResponse.from_user(current_user)


@router.patch("/me", response_model=UserResponse)
async def update_profile(update: ProfileUpdate, current_user: RequireAuth) -> UserResponse:
    """Update name and saved delivery address."""
    data = update.model_dump(exclude_unset=True, include={"full_name", "address"})
    if "address" in data and data["address"] is not None:
        data["address"] = Address(**data["address"])
    for field, value in data.items():
        setattr(current_user, field, value)
    current_user.updated_at = utcnow()
    await current_user.save()
    return await UserResponse.from_user(current_user)


@router.put("/password")
@limiter.limit("5/minute;20/hour")
async def change_password(
    request: Request,  # Required for rate limiting
    password_request: PasswordChangeRequest,
    current_user: RequireAuth,
) -> dict:
    """Change the password and revoke the token used for this request."""
    if not verify_password(password_request.current_password, current_user.hashed_password):
        security_logger.warning(
            "Password change failed - invalid current password: user_id=%s, ip=%s",
            current_user.id,
            get_remote_address(request),
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    current_user.hashed_password = get_password_hash(password_request.new_password)
    current_user.updated_at = utcnow()
    await current_user.save()

    token = _bearer_token(request)
    if token:
        await revoke_token(token=token, user_id=str(current_user.id), reason="password_change")

    security_logger.info(
        "Password changed successfully: user_id=%s, ip=%s",
        current_user.id,
        get_remote_address(request),
    )
    return {"message": "Password updated successfully. Please log in again."}


@router.post("/revoke")
async def logout(request: Request, current_user: RequireAuth) -> dict:
    """Revoke the bearer token so it cannot be used again."""
    token = _bearer_token(request)
    revoked = False
    if token:
        revoked = await revoke_token(token=token, user_id=str(current_user.id), reason="logout")
    posthog_service.capture(distinct_id=str(current_user.id), event="user_logout")
    if token and not revoked:
        return {"message": "Logged out (token could not be revoked)"}
    return {"message": "Successfully logged out"}


@router.post("/token", response_model=Token)
@limiter.limit("30/minute;200/hour")
async def login_token(
    request: Request,  # Required for rate limiting
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
) -> Token:
    """Login with email and password to get a revocable access token.

    OAuth2 names the field 'username'; it carries the email.
    """
    ip_address = get_remote_address(request)

    # Raises 429 while the address is locked out
    user = await authenticate_user(form_data.username, form_data.password, ip_address)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if settings.email_verification_required and not user.is_verified:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email not verified. Please check your email for verification link.",
        )

    user.last_login = utcnow()
    await user.save()

    access_token = create_access_token(
        data={"sub": str(user.id)},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    posthog_service.identify(str(user.id), {"role": user.role.value})
    posthog_service.capture(
        distinct_id=str(user.id), event="user_login", properties={"method": "password"}
    )
    return Token(access_token=access_token)
