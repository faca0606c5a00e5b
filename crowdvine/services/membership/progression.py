"""Progression buffs earned between membership levels.

Buffs are small extra discounts that accumulate until the member places
an order (they are then marked used) or reaches the next level (they are
cleared).
"""

import logging
from dataclasses import dataclass
from typing import Any

from beanie import PydanticObjectId

from crowdvine.models.base import utcnow
from crowdvine.models.membership import Membership, MembershipLevel, ProgressionBuff

logger = logging.getLogger(__name__)

MAX_TOTAL_BUFF_PERCENTAGE = 5.0


@dataclass(frozen=True)
class ProgressionReward:
    segment: str
    ip_threshold: int
    reward_type: str  # buff_percentage, early_access_token, fee_waiver, badge, celebration
    value: float
    description: str


PROGRESSION_REWARDS: list[ProgressionReward] = [
    ProgressionReward("basic-bronze", 2, "buff_percentage", 0.5, "+0.5% on your next order"),
    ProgressionReward("basic-bronze", 4, "buff_percentage", 0.5, "+0.5% on your next order"),
    ProgressionReward("bronze-silver", 10, "early_access_token", 1, "Early access to the next pallet"),
    ProgressionReward("bronze-silver", 14, "fee_waiver", 1, "Service fee waived on your next order"),
    ProgressionReward("silver-gold", 20, "buff_percentage", 1.0, "+1% on your next order"),
    ProgressionReward("silver-gold", 25, "buff_percentage", 1.0, "+1% on your next order"),
    ProgressionReward("silver-gold", 30, "buff_percentage", 1.0, "+1% on your next order"),
    ProgressionReward("silver-gold", 30, "badge", 1, "Silver ambassador badge"),
]


def level_segment(points: int, level: MembershipLevel) -> str | None:
    """Segment of the ladder a member is progressing through."""
    if level == MembershipLevel.BASIC and 0 <= points <= 4:
        return "basic-bronze"
    if level == MembershipLevel.BRONS and 5 <= points <= 14:
        return "bronze-silver"
    if level == MembershipLevel.SILVER and 15 <= points <= 34:
        return "silver-gold"
    return None


def rewards_reached(
    segment: str | None, previous_points: int, points: int
) -> list[ProgressionReward]:
    """Rewards of a segment whose threshold lies in (previous_points, points]."""
    if segment is None:
        return []
    return [
        r
        for r in PROGRESSION_REWARDS
        if r.segment == segment and previous_points < r.ip_threshold <= points
    ]


async def award_progression_rewards(
    user_id: PydanticObjectId,
    previous_points: int,
    points: int,
    level: MembershipLevel,
) -> list[ProgressionBuff]:
    """Create buffs for every buff reward reached. Returns the new buffs."""
    segment = level_segment(points, level)
    created: list[ProgressionBuff] = []

    for reward in rewards_reached(segment, previous_points, points):
        if reward.reward_type != "buff_percentage":
            logger.info(
                "Progression reward %s reached by user %s at %d IP",
                reward.reward_type,
                user_id,
                reward.ip_threshold,
            )
            continue

        existing = await ProgressionBuff.find_one(
            ProgressionBuff.user_id == user_id,
            ProgressionBuff.segment == segment,
            ProgressionBuff.ip_threshold == reward.ip_threshold,
            ProgressionBuff.used_at == None,  # noqa: E711
        )
        if existing:
            continue

        buff = ProgressionBuff(
            user_id=user_id,
            buff_percentage=reward.value,
            buff_description=reward.description,
            segment=segment,
            ip_threshold=reward.ip_threshold,
        )
        await buff.insert()
        created.append(buff)
        logger.info("Awarded %.1f%% buff to user %s", reward.value, user_id)

    return created


async def active_buffs(user_id: PydanticObjectId) -> list[ProgressionBuff]:
    return (
        await ProgressionBuff.find(
            ProgressionBuff.user_id == user_id,
            ProgressionBuff.used_at == None,  # noqa: E711
        )
        .sort("+earned_at")
        .to_list()
    )


def sum_buffs(buffs: list[ProgressionBuff]) -> float:
    return min(MAX_TOTAL_BUFF_PERCENTAGE, sum(b.buff_percentage for b in buffs))


def buffs_within_cap(buffs: list[ProgressionBuff]) -> list[ProgressionBuff]:
    """Oldest buffs whose combined percentage stays within the cap."""
    selected: list[ProgressionBuff] = []
    total = 0.0
    for buff in buffs:
        if total + buff.buff_percentage > MAX_TOTAL_BUFF_PERCENTAGE + 1e-9:
            break
        selected.append(buff)
        total += buff.buff_percentage
    return selected


async def total_buff_percentage(user_id: PydanticObjectId) -> float:
    return sum_buffs(await active_buffs(user_id))


async def apply_buffs(
    user_id: PydanticObjectId, order_id: PydanticObjectId | None = None
) -> tuple[float, int]:
    """Mark buffs as used on an order, up to the cap. Returns (percentage, count).

    Buffs that would push the total over the cap stay active for a later order.
    """
    buffs = buffs_within_cap(await active_buffs(user_id))
    percentage = sum(b.buff_percentage for b in buffs)
    now = utcnow()
    for buff in buffs:
        buff.used_at = now
        buff.used_on_order_id = order_id
        await buff.save()

    if buffs:
        logger.info(
            "Applied %d progression buffs (%.1f%%) for user %s on order %s",
            len(buffs),
            percentage,
            user_id,
            order_id,
        )
    return percentage, len(buffs)


async def clear_buffs_on_level_up(user_id: PydanticObjectId) -> int:
    result = await ProgressionBuff.find(
        ProgressionBuff.user_id == user_id,
        ProgressionBuff.used_at == None,  # noqa: E711
        ProgressionBuff.expires_on_upgrade == True,  # noqa: E712
    ).delete()
    cleared = result.deleted_count if result else 0
    if cleared:
        logger.info("Cleared %d progression buffs for user %s on level-up", cleared, user_id)
    return cleared


async def progression_summary(membership: Membership) -> dict[str, Any]:
    buffs = await active_buffs(membership.user_id)
    segment = level_segment(membership.impact_points, membership.level)
    upcoming = [
        {
            "ip_threshold": r.ip_threshold,
            "reward_type": r.reward_type,
            "description": r.description,
        }
        for r in PROGRESSION_REWARDS
        if r.segment == segment and r.ip_threshold > membership.impact_points
    ]
    return {
        "current_segment": segment,
        "total_percentage": sum_buffs(buffs),
        "active_buffs": [
            {
                "id": str(b.id),
                "buff_percentage": b.buff_percentage,
                "description": b.buff_description,
                "earned_at": b.earned_at,
                "segment": b.segment,
            }
            for b in buffs
        ],
        "upcoming_rewards": upcoming,
    }
