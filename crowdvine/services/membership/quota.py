"""Monthly invite quotas."""

import logging
from datetime import datetime, timezone

from beanie import PydanticObjectId

from crowdvine.models.base import as_utc, utcnow
from crowdvine.models.membership import Membership
from crowdvine.services.membership.levels import INVITE_QUOTAS

logger = logging.getLogger(__name__)


class QuotaExceededError(Exception):
    """Raised when a member has no invites left this month."""


def available_invites(membership: Membership) -> int:
    return max(0, membership.invite_quota_monthly - membership.invites_used_this_month)


def start_of_month(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def start_of_next_month(now: datetime) -> datetime:
    if now.month == 12:
        return now.replace(year=now.year + 1, month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return now.replace(month=now.month + 1, day=1, hour=0, minute=0, second=0, microsecond=0)


def time_until_reset(now: datetime | None = None) -> dict:
    """Days and hours left until quotas reset on the 1st of next month."""
    now = now or datetime.now(timezone.utc)
    reset_at = start_of_next_month(now)
    remaining = reset_at - now
    return {
        "days": remaining.days,
        "hours": remaining.seconds // 3600,
        "reset_date": reset_at,
    }


async def check_and_reset_quota_if_needed(membership: Membership) -> bool:
    """Reset a membership's usage if the last reset predates this month."""
    now = utcnow()
    last_reset = as_utc(membership.last_quota_reset)
    if last_reset is not None and last_reset >= start_of_month(now):
        return False

    membership.invites_used_this_month = 0
    membership.invite_quota_monthly = INVITE_QUOTAS[membership.level]
    membership.last_quota_reset = now
    membership.updated_at = now
    await membership.save()
    logger.info("Monthly invite quota reset for user %s", membership.user_id)
    return True


async def consume_invite_quota(membership: Membership) -> int:
    """Use one invite. Returns invites remaining afterwards."""
    await check_and_reset_quota_if_needed(membership)
    if available_invites(membership) <= 0:
        raise QuotaExceededError("No invites remaining this month")

    membership.invites_used_this_month += 1
    membership.updated_at = utcnow()
    await membership.save()
    return available_invites(membership)


async def reset_monthly_quotas() -> int:
    """Reset invite usage for every membership. Returns memberships reset."""
    now = utcnow()
    count = 0
    async for membership in Membership.find_all():
        membership.invites_used_this_month = 0
        membership.invite_quota_monthly = INVITE_QUOTAS[membership.level]
        membership.last_quota_reset = now
        membership.updated_at = now
        await membership.save()
        count += 1
    logger.info("Reset monthly invite quotas for %d memberships", count)
    return count


async def get_quota_status(user_id: PydanticObjectId) -> dict:
    membership = await Membership.find_one(Membership.user_id == user_id)
    if membership is None:
        return {"available": 0, "used": 0, "total": 0}
    await check_and_reset_quota_if_needed(membership)
    return {
        "available": available_invites(membership),
        "used": membership.invites_used_this_month,
        "total": membership.invite_quota_monthly,
    }
