"""Membership, Impact Point events and progression buffs."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field

from crowdvine.models.base import utcnow


class MembershipLevel(str, Enum):
    """Membership tiers in ascending order.

    Stored values keep their historical Swedish names (brons, guld).
    """

    REQUESTER = "requester"
    BASIC = "basic"
    BRONS = "brons"
    SILVER = "silver"
    GULD = "guld"
    PRIVILEGE = "privilege"
    ADMIN = "admin"


class IPEventType(str, Enum):
    INVITE_SIGNUP = "invite_signup"
    INVITE_RESERVATION = "invite_reservation"
    INVITE_SECOND_ORDER = "invite_second_order"
    OWN_ORDER = "own_order"
    OWN_ORDER_LARGE = "own_order_large"
    PALLET_MILESTONE = "pallet_milestone"
    PALLET_MILESTONE_6 = "pallet_milestone_6"
    PALLET_MILESTONE_12 = "pallet_milestone_12"
    REVIEW_SUBMITTED = "review_submitted"
    SHARE_ACTION = "share_action"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    LEVEL_UPGRADE = "level_upgrade"
    MIGRATION = "migration"


class Membership(Document):
    """One membership per user: level, Impact Points and invite quota."""

    user_id: Indexed(PydanticObjectId, unique=True)
    level: MembershipLevel = MembershipLevel.BASIC
    impact_points: int = 0
    invite_quota_monthly: int = 2
    invites_used_this_month: int = 0
    last_quota_reset: datetime = Field(default_factory=utcnow)
    level_assigned_at: datetime = Field(default_factory=utcnow)
    invited_by_user_id: Optional[PydanticObjectId] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "memberships"
        indexes = ["level", "invited_by_user_id"]


class ImpactPointEvent(Document):
    """Append-only ledger row for Impact Point changes."""

    user_id: Indexed(PydanticObjectId)
    event_type: IPEventType
    points_earned: int
    points_total_after: int
    related_user_id: Optional[PydanticObjectId] = None
    related_order_id: Optional[PydanticObjectId] = None
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "impact_point_events"
        indexes = [
            [("user_id", 1), ("event_type", 1)],
            [("user_id", 1), ("created_at", -1)],
        ]


class ProgressionBuff(Document):
    """A temporary discount earned on the way to the next level."""

    user_id: Indexed(PydanticObjectId)
    buff_percentage: float
    buff_description: Optional[str] = None
    earned_at: datetime = Field(default_factory=utcnow)
    expires_on_upgrade: bool = True
    used_at: Optional[datetime] = None
    used_on_order_id: Optional[PydanticObjectId] = None
    segment: Optional[str] = None
    ip_threshold: Optional[int] = None

    class Settings:
        name = "progression_buffs"
        indexes = [[("user_id", 1), ("used_at", 1)]]
