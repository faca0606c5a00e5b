"""Discount code document model."""

from datetime import datetime
from typing import Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field

from crowdvine.models.base import as_utc, utcnow


class DiscountCode(Document):
    """Percentage discount redeemable at checkout."""

    code: Indexed(str, unique=True)
    discount_percentage: float = Field(gt=0, le=100)
    usage_limit: Optional[int] = 1
    current_usage: int = 0
    expires_at: Optional[datetime] = None
    is_active: bool = True

    # Reward codes earned through invitations
    earned_by_user_id: Optional[Indexed(PydanticObjectId)] = None
    earned_for_invitation_id: Optional[PydanticObjectId] = None
    used_by_user_id: Optional[Indexed(PydanticObjectId)] = None
    used_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "discount_codes"

    @property
    def is_expired(self) -> bool:
        expires_at = as_utc(self.expires_at)
        return expires_at is not None and expires_at < utcnow()

    @property
    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.current_usage >= self.usage_limit
