"""Impact Points engine: awarding points and automatic level upgrades."""

import logging
from datetime import timedelta

from beanie import PydanticObjectId

from crowdvine.models.base import utcnow
from crowdvine.models.membership import (
    ImpactPointEvent,
    IPEventType,
    Membership,
    MembershipLevel,
)
from crowdvine.models.reservation import Reservation, ReservationStatus
from crowdvine.services.analytics import posthog_service
from crowdvine.services.membership import levels, progression

logger = logging.getLogger(__name__)


async def get_membership(user_id: PydanticObjectId) -> Membership | None:
    return await Membership.find_one(Membership.user_id == user_id)


async def get_or_create_membership(
    user_id: PydanticObjectId,
    level: MembershipLevel = MembershipLevel.BASIC,
    invited_by: PydanticObjectId | None = None,
) -> Membership:
    membership = await get_membership(user_id)
    if membership is None:
        membership = Membership(
            user_id=user_id,
            level=level,
            invite_quota_monthly=levels.INVITE_QUOTAS[level],
            invited_by_user_id=invited_by,
        )
        await membership.insert()
        logger.info("Created %s membership for user %s", level.value, user_id)
    return membership


async def award_impact_points(
    user_id: PydanticObjectId,
    event_type: IPEventType,
    points: int,
    related_user_id: PydanticObjectId | None = None,
    related_order_id: PydanticObjectId | None = None,
    description: str | None = None,
) -> Membership:
    """Record an IP event and apply its effect on the member's level.

    Levels only move up automatically. Requesters and admins keep their
    level whatever their points.
    """
    membership = await get_or_create_membership(user_id)
    previous = membership.impact_points
    membership.impact_points = max(0, previous + points)
    membership.updated_at = utcnow()

    await ImpactPointEvent(
        user_id=user_id,
        event_type=event_type,
        points_earned=points,
        points_total_after=membership.impact_points,
        related_user_id=related_user_id,
        related_order_id=related_order_id,
        description=description,
    ).insert()

    upgraded_from = None
    target = levels.level_for_points(membership.impact_points)
    if (
        membership.level in levels.LADDER
        and levels.level_rank(target) > levels.level_rank(membership.level)
    ):
        upgraded_from = membership.level
        membership.level = target
        membership.level_assigned_at = utcnow()
        membership.invite_quota_monthly = levels.INVITE_QUOTAS[target]

    await membership.save()

    if upgraded_from is not None:
        await ImpactPointEvent(
            user_id=user_id,
            event_type=IPEventType.LEVEL_UPGRADE,
            points_earned=0,
            points_total_after=membership.impact_points,
            description=f"Upgraded from {upgraded_from.value} to {membership.level.value}",
        ).insert()
        await progression.clear_buffs_on_level_up(user_id)
        logger.info(
            "User %s upgraded from %s to %s", user_id, upgraded_from.value, membership.level.value
        )
        posthog_service.capture(
            distinct_id=str(user_id),
            event="membership_level_upgraded",
            properties={"from": upgraded_from.value, "to": membership.level.value},
        )

    if points > 0:
        await progression.award_progression_rewards(
            user_id, previous, membership.impact_points, membership.level
        )

    return membership


async def _has_event(user_id: PydanticObjectId, event_type: IPEventType, **filters) -> bool:
    query = {"user_id": user_id, "event_type": event_type.value}
    query.update(filters)
    return await ImpactPointEvent.find(query).count() > 0


async def award_for_invite_signup(
    inviter_id: PydanticObjectId, invited_id: PydanticObjectId
) -> Membership:
    return await award_impact_points(
        inviter_id,
        IPEventType.INVITE_SIGNUP,
        levels.IP_INVITE_SIGNUP,
        related_user_id=invited_id,
        description="Invited member signed up",
    )


async def count_unique_pallets(user_id: PydanticObjectId) -> int:
    pallet_ids = await Reservation.get_motor_collection().distinct(
        "pallet_id",
        {"user_id": user_id, "pallet_id": {"$ne": None}, "status": {"$ne": ReservationStatus.CANCELLED.value}},
    )
    return len(pallet_ids)


async def award_for_pallet_milestones(user_id: PydanticObjectId) -> int:
    """Award each reached pallet milestone once. Returns points awarded."""
    pallet_count = await count_unique_pallets(user_id)
    awarded = 0
    for milestone, points in sorted(levels.PALLET_MILESTONES.items()):
        if pallet_count < milestone:
            break
        event_type = {
            3: IPEventType.PALLET_MILESTONE,
            6: IPEventType.PALLET_MILESTONE_6,
            12: IPEventType.PALLET_MILESTONE_12,
        }[milestone]
        description = f"{milestone} pallets milestone"
        if await _has_event(user_id, event_type, description=description):
            continue
        await award_impact_points(user_id, event_type, points, description=description)
        awarded += points
    return awarded


async def award_for_reservation(reservation: Reservation) -> int:
    """Award the member and their inviter for a new reservation.

    Returns points awarded to the member.
    """
    user_id = reservation.user_id
    awarded = 0

    points, event_name = levels.own_order_points(reservation.bottle_count)
    if event_name:
        await award_impact_points(
            user_id,
            IPEventType(event_name),
            points,
            related_order_id=reservation.id,
            description=f"Order with {reservation.bottle_count} bottles",
        )
        awarded += points

    awarded += await award_for_pallet_milestones(user_id)

    membership = await get_membership(user_id)
    inviter_id = membership.invited_by_user_id if membership else None
    if inviter_id is None:
        return awarded

    order_count = await Reservation.find(
        Reservation.user_id == user_id,
        Reservation.status != ReservationStatus.CANCELLED,
    ).count()

    if order_count <= 1:
        await award_impact_points(
            inviter_id,
            IPEventType.INVITE_RESERVATION,
            levels.IP_INVITE_RESERVATION,
            related_user_id=user_id,
            related_order_id=reservation.id,
            description="Invited member placed their first order",
        )
    elif order_count == 2 and not await _has_event(
        inviter_id, IPEventType.INVITE_SECOND_ORDER, related_user_id=user_id
    ):
        await award_impact_points(
            inviter_id,
            IPEventType.INVITE_SECOND_ORDER,
            levels.IP_INVITE_SECOND_ORDER,
            related_user_id=user_id,
            related_order_id=reservation.id,
            description="Invited member placed their second order",
        )

    return awarded


async def _award_rate_limited(
    user_id: PydanticObjectId, event_type: IPEventType, points: int, description: str
) -> Membership | None:
    since = utcnow() - timedelta(hours=levels.RATE_LIMIT_HOURS)
    if await ImpactPointEvent.find(
        ImpactPointEvent.user_id == user_id,
        ImpactPointEvent.event_type == event_type,
        ImpactPointEvent.created_at >= since,
    ).count():
        logger.debug("Rate limited %s for user %s", event_type.value, user_id)
        return None
    return await award_impact_points(user_id, event_type, points, description=description)


async def award_for_review(user_id: PydanticObjectId) -> Membership | None:
    """+1 IP for a review, at most once per 24 hours."""
    return await _award_rate_limited(
        user_id, IPEventType.REVIEW_SUBMITTED, levels.IP_REVIEW_SUBMITTED, "Review submitted"
    )


async def award_for_share(user_id: PydanticObjectId) -> Membership | None:
    """+1 IP for sharing, at most once per 24 hours."""
    return await _award_rate_limited(
        user_id, IPEventType.SHARE_ACTION, levels.IP_SHARE_ACTION, "Shared a wine or pallet"
    )


async def adjust_impact_points(
    user_id: PydanticObjectId, points_change: int, description: str
) -> Membership:
    """Manual admin adjustment, positive or negative."""
    return await award_impact_points(
        user_id, IPEventType.MANUAL_ADJUSTMENT, points_change, description=description
    )


async def set_level(membership: Membership, level: MembershipLevel) -> Membership:
    """Set a level explicitly (admin). Quota follows the new level."""
    previous = membership.level
    membership.level = level
    membership.level_assigned_at = utcnow()
    membership.invite_quota_monthly = levels.INVITE_QUOTAS[level]
    membership.updated_at = utcnow()
    await membership.save()
    if levels.level_rank(level) > levels.level_rank(previous):
        await progression.clear_buffs_on_level_up(membership.user_id)
    logger.info("Level for user %s set from %s to %s", membership.user_id, previous.value, level.value)
    return membership


async def recent_events(user_id: PydanticObjectId, limit: int = 20) -> list[ImpactPointEvent]:
    return (
        await ImpactPointEvent.find(ImpactPointEvent.user_id == user_id)
        .sort("-created_at")
        .limit(limit)
        .to_list()
    )
