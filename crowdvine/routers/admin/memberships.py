"""Admin membership management."""

from typing import Any

from fastapi import HTTPException, status

from crowdvine.models.membership import Membership, MembershipLevel
from crowdvine.schemas.membership import LevelUpdate, PointsAdjustment
from crowdvine.services.auth import RequireAdmin
from crowdvine.services.membership import (
    adjust_impact_points,
    get_level_info,
    membership_overview,
    membership_to_dict,
    set_level,
)

from .._common import parse_object_id


async def _membership_for(user_id: str) -> Membership:
    membership = await Membership.find_one(Membership.user_id == parse_object_id(user_id, "User"))
    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No membership for user {user_id}",
        )
    return membership


async def list_memberships(
    admin: RequireAdmin, level: MembershipLevel | None = None
) -> list[dict[str, Any]]:
    query = Membership.find(Membership.level == level) if level else Membership.find_all()
    memberships = await query.sort(-Membership.impact_points).to_list()
    return [membership_to_dict(m) for m in memberships]


async def memberships_by_level(admin: RequireAdmin) -> list[dict[str, Any]]:
    """Each level with its rules and how many members hold it."""
    return [
        {
            **get_level_info(level),
            "members": await Membership.find(Membership.level == level).count(),
        }
        for level in MembershipLevel
    ]


async def get_user_membership(user_id: str, admin: RequireAdmin) -> dict[str, Any]:
    return await membership_overview(await _membership_for(user_id))


async def update_level(user_id: str, body: LevelUpdate, admin: RequireAdmin) -> dict[str, Any]:
    membership = await set_level(await _membership_for(user_id), body.level)
    return membership_to_dict(membership)


async def adjust_points(user_id: str, body: PointsAdjustment, admin: RequireAdmin) -> dict[str, Any]:
    """Add or remove Impact Points; totals never go below zero."""
    membership = await _membership_for(user_id)
    membership = await adjust_impact_points(
        membership.user_id, body.points, body.description or f"Manual adjustment by {admin.email}"
    )
    return membership_to_dict(membership)
