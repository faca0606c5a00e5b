"""Membership views for the API."""

from typing import Any

from crowdvine.models.membership import ImpactPointEvent, Membership

from .levels import get_level_info, get_next_level_info, get_voucher_progress
from .points import recent_events
from .progression import progression_summary
from .quota import get_quota_status, time_until_reset


def membership_to_dict(membership: Membership) -> dict[str, Any]:
    return {
        "id": str(membership.id),
        "user_id": str(membership.user_id),
        "level": membership.level.value,
        "impact_points": membership.impact_points,
        "invite_quota_monthly": membership.invite_quota_monthly,
        "invites_used_this_month": membership.invites_used_this_month,
        "level_assigned_at": membership.level_assigned_at,
        "invited_by_user_id": str(membership.invited_by_user_id) if membership.invited_by_user_id else None,
        "created_at": membership.created_at,
    }


def event_to_dict(event: ImpactPointEvent) -> dict[str, Any]:
    return {
        "id": str(event.id),
        "event_type": event.event_type.value,
        "points_earned": event.points_earned,
        "points_total_after": event.points_total_after,
        "description": event.description,
        "related_user_id": str(event.related_user_id) if event.related_user_id else None,
        "related_order_id": str(event.related_order_id) if event.related_order_id else None,
        "created_at": event.created_at,
    }


async def membership_overview(membership: Membership, events_limit: int = 20) -> dict[str, Any]:
    """Everything the member page shows: level, progress, invites, buffs, history."""
    return {
        **membership_to_dict(membership),
        "level_info": get_level_info(membership.level),
        "next_level": get_next_level_info(membership.impact_points, membership.level),
        "voucher_progress": get_voucher_progress(membership.impact_points),
        "invites": {
            **await get_quota_status(membership.user_id),
            "resets_in": time_until_reset(),
        },
        "progression": await progression_summary(membership),
        "recent_events": [event_to_dict(e) for e in await recent_events(membership.user_id, events_limit)],
    }
