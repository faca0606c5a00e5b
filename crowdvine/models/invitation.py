"""Invitation codes and access requests."""

from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field

from crowdvine.models.base import as_utc, utcnow


class InvitationCode(Document):
    """A single-use (by default) code that lets a new member sign up."""

    code: Indexed(str, unique=True)
    created_by: Optional[PydanticObjectId] = None
    is_active: bool = True
    expires_at: Optional[datetime] = None
    max_uses: int = 1
    current_uses: int = 0
    used_at: Optional[datetime] = None
    used_by: Optional[PydanticObjectId] = None
    # Set for codes issued when an access request is approved
    email: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "invitation_codes"
        indexes = ["created_by", "expires_at"]

    @property
    def is_expired(self) -> bool:
        expires_at = as_utc(self.expires_at)
        return expires_at is not None and expires_at < utcnow()

    @property
    def is_used_up(self) -> bool:
        return self.current_uses >= self.max_uses

    @property
    def is_usable(self) -> bool:
        return self.is_active and not self.is_expired and not self.is_used_up


class AccessRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AccessRequest(Document):
    """A prospective member asking to join without an invitation."""

    email: Indexed(str)
    full_name: Optional[str] = None
    message: Optional[str] = None
    status: AccessRequestStatus = AccessRequestStatus.PENDING
    invitation_code: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[PydanticObjectId] = None

    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "access_requests"
        indexes = ["status"]
