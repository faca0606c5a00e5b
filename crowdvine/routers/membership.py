"""Member endpoints: membership, invitations and discount codes."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from crowdvine.config import settings
from crowdvine.models.invitation import InvitationCode
from crowdvine.schemas.membership import InvitationCreate, InvitationRedeem
from crowdvine.services.auth import RequireAuth
from crowdvine.services.discounts import code_to_dict, codes_for_user
from crowdvine.services.invitations import (
    InvitationError,
    deactivate_invitation,
    generate_invitation,
    invitation_to_dict,
    invitations_for_user,
    redeem_invitation,
    validate_code,
)
from crowdvine.services.membership import (
    QuotaExceededError,
    award_for_review,
    award_for_share,
    get_membership,
    membership_overview,
)

from ._common import get_or_404, limiter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/membership/me")
async def my_membership(current_user: RequireAuth) -> dict[str, Any]:
    """Level, progress to the next level, vouchers, invites, buffs and history."""
    membership = await get_membership(current_user.id)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No membership found")
    return await membership_overview(membership)


@router.post("/membership/share")
async def record_share(current_user: RequireAuth) -> dict[str, Any]:
    """Impact Point for sharing; at most one per day."""
    membership = await award_for_share(current_user.id)
    return {
        "awarded": membership is not None,
        "impact_points": membership.impact_points if membership else None,
    }


@router.post("/membership/review")
async def record_review(current_user: RequireAuth) -> dict[str, Any]:
    """Impact Point for a review; at most one per day."""
    membership = await award_for_review(current_user.id)
    return {
        "awarded": membership is not None,
        "impact_points": membership.impact_points if membership else None,
    }


# Invitations


@router.post("/invitations", status_code=201)
async def create_invitation(body: InvitationCreate, current_user: RequireAuth) -> dict[str, Any]:
    try:
        invitation = await generate_invitation(current_user, body.expires_in_days)
    except (QuotaExceededError, InvitationError) as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return invitation_to_dict(invitation)


@router.get("/invitations")
async def list_my_invitations(current_user: RequireAuth) -> list[dict[str, Any]]:
    return [invitation_to_dict(i) for i in await invitations_for_user(current_user.id)]


@router.delete("/invitations/{invitation_id}")
async def deactivate_my_invitation(invitation_id: str, current_user: RequireAuth) -> dict[str, Any]:
    invitation = await get_or_404(InvitationCode, invitation_id, "Invitation")
    if invitation.created_by != current_user.id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Invitation with ID {invitation_id} not found",
        )
    return invitation_to_dict(await deactivate_invitation(invitation))


@router.get("/invitations/validate/{code}")
async def validate_invitation(code: str) -> dict[str, Any]:
    """Whether a code can still be used, for the signup page."""
    invitation = await validate_code(code)
    if invitation is None:
        return {"valid": False}
    return {"valid": True, "expires_at": invitation.expires_at, "email": invitation.email}


@router.post("/invitations/redeem", status_code=201)
@limiter.limit(lambda: settings.signup_rate_limit)
async def redeem(request: Request, body: InvitationRedeem) -> dict[str, Any]:
    """Create an account from an invitation code."""
    try:
        user = await redeem_invitation(body.email, body.password, body.code, body.full_name)
    except InvitationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"id": str(user.id), "email": user.email, "message": "Account created"}


# Discount codes


@router.get("/discount-codes")
async def my_discount_codes(current_user: RequireAuth) -> list[dict[str, Any]]:
    """Codes I earned or used."""
    return [code_to_dict(c) for c in await codes_for_user(current_user.id)]
