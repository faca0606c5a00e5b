"""User manager for fastapi-users with email callbacks."""

import hashlib
import logging
from collections.abc import AsyncGenerator
from typing import Optional

from beanie import PydanticObjectId
from fastapi import Depends, Request
from fastapi_users import BaseUserManager, FastAPIUsers
from fastapi_users_db_beanie import BeanieUserDatabase, ObjectIDIDMixin

from crowdvine.auth.backend import auth_backend
from crowdvine.auth.db import get_user_db
from crowdvine.config import settings
from crowdvine.models.base import utcnow
from crowdvine.models.membership import MembershipLevel
from crowdvine.models.user import User
from crowdvine.services.analytics import posthog_service
from crowdvine.services.email import get_email_service

logger = logging.getLogger(__name__)


def _derive_secret(base_secret: str, purpose: str) -> str:
    """Per-purpose secret so reset and verification tokens never share the JWT key."""
    return hashlib.sha256(f"{base_secret}:{purpose}".encode()).hexdigest()


class UserManager(ObjectIDIDMixin, BaseUserManager[User, PydanticObjectId]):
    """User manager sending verification and reset emails.

    Self-registered users start as requesters: they can log in but cannot
    check out until an admin grants access or they redeem an invitation.
    """

    reset_password_token_secret = _derive_secret(settings.secret_key, "reset_password")
    verification_token_secret = _derive_secret(settings.secret_key, "verification")

    async def on_after_register(self, user: User, request: Optional[Request] = None) -> None:
        from crowdvine.services.membership import get_or_create_membership

        logger.info("User registered (id=%s)", user.id)
        await get_or_create_membership(user.id, level=MembershipLevel.REQUESTER)

        posthog_service.capture(distinct_id=str(user.id), event="user_registered")
        if settings.email_verification_required and not user.is_verified:
            await self.request_verify(user, request)

    async def on_after_forgot_password(
        self, user: User, token: str, request: Optional[Request] = None
    ) -> None:
        logger.info("Password reset requested for user (id=%s)", user.id)
        if not await get_email_service().send_password_reset_email(user.email, token):
            logger.error("Failed to send password reset email for user (id=%s)", user.id)

    async def on_after_reset_password(self, user: User, request: Optional[Request] = None) -> None:
        logger.info("User password reset successfully (id=%s)", user.id)

    async def on_after_request_verify(
        self, user: User, token: str, request: Optional[Request] = None
    ) -> None:
        logger.info("Verification requested for user (id=%s)", user.id)
        if not await get_email_service().send_verification_email(user.email, token):
            logger.error("Failed to send verification email for user (id=%s)", user.id)

    async def on_after_login(
        self,
        user: User,
        request: Optional[Request] = None,
        response: Optional[object] = None,
    ) -> None:
        user.last_login = utcnow()
        await user.save()
        posthog_service.capture(
            distinct_id=str(user.id), event="user_login", properties={"method": "fastapi_users"}
        )


async def get_user_manager(
    user_db: BeanieUserDatabase = Depends(get_user_db),
) -> AsyncGenerator[UserManager, None]:
    yield UserManager(user_db)


fastapi_users = FastAPIUsers[User, PydanticObjectId](get_user_manager, [auth_backend])
