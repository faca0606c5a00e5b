"""Revoked JWTs and failed login tracking."""

from datetime import datetime, timedelta
from typing import ClassVar

from beanie import Document, Indexed
from pydantic import Field

from crowdvine.models.base import as_utc, utcnow


class RevokedToken(Document):
    """A JWT (by jti claim) that must no longer be accepted.

    Rows are kept until the token would have expired anyway.
    """

    jti: Indexed(str, unique=True)
    revoked_at: datetime = Field(default_factory=utcnow)
    expires_at: Indexed(datetime)
    user_id: str | None = None
    reason: str = "logout"

    class Settings:
        name = "revoked_tokens"

    @classmethod
    async def is_revoked(cls, jti: str) -> bool:
        return await cls.find_one(cls.jti == jti) is not None

    @classmethod
    async def revoke_token(
        cls,
        jti: str,
        expires_at: datetime,
        user_id: str | None = None,
        reason: str = "logout",
    ) -> "RevokedToken":
        token = cls(jti=jti, expires_at=expires_at, user_id=user_id, reason=reason)
        await token.insert()
        return token

    @classmethod
    async def cleanup_expired(cls) -> int:
        """Delete revocations for tokens that have expired. Returns rows removed."""
        result = await cls.find(cls.expires_at < utcnow()).delete()
        return result.deleted_count if result else 0


class LoginAttempt(Document):
    """One login attempt against an email address.

    MAX_FAILED_ATTEMPTS failures inside LOCKOUT_WINDOW_MINUTES lock the
    address for LOCKOUT_DURATION_MINUTES after the latest failure.
    """

    email: Indexed(str)
    attempted_at: datetime = Field(default_factory=utcnow)
    ip_address: str | None = None
    failed: bool = True

    class Settings:
        name = "login_attempts"
        indexes = ["attempted_at"]

    MAX_FAILED_ATTEMPTS: ClassVar[int] = 5
    LOCKOUT_WINDOW_MINUTES: ClassVar[int] = 15
    LOCKOUT_DURATION_MINUTES: ClassVar[int] = 15

    @classmethod
    def _recent_failures(cls, email: str):
        window_start = utcnow() - timedelta(minutes=cls.LOCKOUT_WINDOW_MINUTES)
        return cls.find(
            cls.email == email.lower(),
            cls.failed == True,  # noqa: E712
            cls.attempted_at >= window_start,
        )

    @classmethod
    async def record_attempt(
        cls, email: str, failed: bool = True, ip_address: str | None = None
    ) -> "LoginAttempt":
        attempt = cls(email=email.lower(), failed=failed, ip_address=ip_address)
        await attempt.insert()
        return attempt

    @classmethod
    async def is_locked_out(cls, email: str) -> bool:
        return await cls._recent_failures(email).count() >= cls.MAX_FAILED_ATTEMPTS

    @classmethod
    async def get_lockout_remaining_seconds(cls, email: str) -> int:
        """Seconds until the lockout on an email lifts, 0 when not locked."""
        failures = await cls._recent_failures(email).sort("-attempted_at").to_list()
        if len(failures) < cls.MAX_FAILED_ATTEMPTS:
            return 0

        lockout_end = as_utc(failures[0].attempted_at) + timedelta(
            minutes=cls.LOCKOUT_DURATION_MINUTES
        )
        return max(0, int((lockout_end - utcnow()).total_seconds()))

    @classmethod
    async def clear_attempts(cls, email: str) -> int:
        result = await cls.find(cls.email == email.lower()).delete()
        return result.deleted_count if result else 0

    @classmethod
    async def cleanup_old_attempts(cls, older_than_hours: int = 24) -> int:
        cutoff = utcnow() - timedelta(hours=older_than_hours)
        result = await cls.find(cls.attempted_at < cutoff).delete()
        return result.deleted_count if result else 0
