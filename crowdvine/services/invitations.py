"""Invitation codes, redemption and access requests."""

import logging
import secrets
import string
from datetime import timedelta
from typing import Any

from beanie import PydanticObjectId
from pymongo.errors import DuplicateKeyError

from crowdvine.config import settings
from crowdvine.models.base import utcnow
from crowdvine.models.invitation import AccessRequest, AccessRequestStatus, InvitationCode
from crowdvine.models.membership import Membership, MembershipLevel
from crowdvine.models.user import User
from crowdvine.services.analytics import posthog_service
from crowdvine.services.auth import get_password_hash, get_user_by_email, normalize_email
from crowdvine.services.discounts import create_reward_code
from crowdvine.services.email import get_email_service
from crowdvine.services.membership import (
    award_for_invite_signup,
    consume_invite_quota,
    get_membership,
    get_or_create_membership,
)
from crowdvine.services.membership.levels import INVITE_QUOTAS

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 12
MIN_PASSWORD_LENGTH = 8


class InvitationError(Exception):
    """Raised when an invitation cannot be created, validated or redeemed."""


def generate_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def signup_urls(code: str) -> dict[str, str]:
    frontend = settings.frontend_url.rstrip("/")
    return {"signup_url": f"{frontend}/i/{code}", "code_signup_url": f"{frontend}/c/{code}"}


def invitation_to_dict(invitation: InvitationCode) -> dict[str, Any]:
    return {
        "id": str(invitation.id),
        "code": invitation.code,
        "is_active": invitation.is_active,
        "expires_at": invitation.expires_at,
        "max_uses": invitation.max_uses,
        "current_uses": invitation.current_uses,
        "used_at": invitation.used_at,
        "used_by": str(invitation.used_by) if invitation.used_by else None,
        "email": invitation.email,
        "is_usable": invitation.is_usable,
        "created_at": invitation.created_at,
        **signup_urls(invitation.code),
    }


async def _insert_code(
    created_by: PydanticObjectId | None,
    expires_in_days: int,
    max_uses: int = 1,
    email: str | None = None,
) -> InvitationCode:
    # Collisions are astronomically unlikely but the index is unique
    for _ in range(5):
        invitation = InvitationCode(
            code=generate_code(),
            created_by=created_by,
            expires_at=utcnow() + timedelta(days=expires_in_days),
            max_uses=max_uses,
            email=email,
        )
        try:
            await invitation.insert()
        except DuplicateKeyError:
            continue
        return invitation
    raise InvitationError("Could not generate a unique invitation code")


async def generate_invitation(user: User, expires_in_days: int | None = None) -> InvitationCode:
    """Create an invitation on behalf of a member, using one of their invites.

    Raises:
        InvitationError: No membership, requester level, or invalid expiry.
        QuotaExceededError: No invites left this month.
    """
    days = expires_in_days or settings.invitation_expiry_days
    if days < 1 or days > 365:
        raise InvitationError("Expiry must be between 1 and 365 days")

    membership = await get_membership(user.id)
    if membership is None or membership.level == MembershipLevel.REQUESTER:
        raise InvitationError("Only members can send invitations")

    await consume_invite_quota(membership)
    invitation = await _insert_code(user.id, days)
    logger.info("User %s created invitation %s", user.id, invitation.id)
    posthog_service.capture(distinct_id=str(user.id), event="invitation_created")
    return invitation


async def generate_admin_invitation(
    admin: User, expires_in_days: int | None = None, max_uses: int = 1, email: str | None = None
) -> InvitationCode:
    """Admin codes are not limited by a monthly quota."""
    days = expires_in_days or settings.invitation_expiry_days
    return await _insert_code(admin.id, days, max_uses=max_uses, email=email)


async def validate_code(code: str) -> InvitationCode | None:
    """The invitation if the code can still be used, otherwise None."""
    invitation = await InvitationCode.find_one(InvitationCode.code == code.strip().upper())
    if invitation is None or not invitation.is_usable:
        return None
    return invitation


async def redeem_invitation(
    email: str, password: str, code: str, full_name: str | None = None
) -> User:
    """Create an account from an invitation and reward the inviter.

    Raises:
        InvitationError: Invalid code, duplicate email or weak password.
    """
    invitation = await validate_code(code)
    if invitation is None:
        raise InvitationError("Invalid or expired invitation code")
    email = normalize_email(email)
    if invitation.email and normalize_email(invitation.email) != email:
        raise InvitationError("This invitation was issued for another email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvitationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if await get_user_by_email(email) is not None:
        raise InvitationError("An account with this email already exists")

    now = utcnow()
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        is_verified=True,
        access_granted_at=now,
        invite_code_used=invitation.code,
    )
    try:
        await user.insert()
    except DuplicateKeyError as e:
        raise InvitationError("An account with this email already exists") from e

    inviter_id = invitation.created_by
    await get_or_create_membership(user.id, level=MembershipLevel.BASIC, invited_by=inviter_id)

    invitation.current_uses += 1
    invitation.used_at = now
    invitation.used_by = user.id
    await invitation.save()

    # Admin codes have no member behind them to reward
    inviter = await User.get(inviter_id) if inviter_id else None
    if inviter is not None and not inviter.is_admin:
        await create_reward_code(
            inviter.id,
            settings.reward_discount_percentage,
            settings.reward_discount_valid_days,
            invitation_id=invitation.id,
        )
        await award_for_invite_signup(inviter.id, user.id)

    logger.info("Invitation %s redeemed by new user %s", invitation.id, user.id)
    posthog_service.capture(
        distinct_id=str(user.id),
        event="invitation_redeemed",
        properties={"inviter_id": str(inviter_id) if inviter_id else None},
    )
    return user


async def invitations_for_user(user_id: PydanticObjectId) -> list[InvitationCode]:
    return await InvitationCode.find(InvitationCode.created_by == user_id).sort(
        -InvitationCode.created_at
    ).to_list()


async def deactivate_invitation(invitation: InvitationCode) -> InvitationCode:
    invitation.is_active = False
    await invitation.save()
    return invitation


async def cleanup_invitations() -> int:
    """Delete expired and used-up codes. Returns how many were removed."""
    now = utcnow()
    result = await InvitationCode.find(
        {
            "$or": [
                {"expires_at": {"$lt": now}},
                {"$expr": {"$gte": ["$current_uses", "$max_uses"]}},
            ]
        }
    ).delete()
    deleted = result.deleted_count if result else 0
    if deleted:
        logger.info("Cleaned up %d expired or used invitation codes", deleted)
    return deleted


# Access requests


async def submit_access_request(
    email: str, full_name: str | None = None, message: str | None = None
) -> AccessRequest:
    """Record a request to join. One open request per email.

    Raises:
        InvitationError: The email already has an account or an open request.
    """
    email = normalize_email(email)
    existing_user = await get_user_by_email(email)
    if existing_user is not None and existing_user.access_granted_at is not None:
        raise InvitationError("This email already has access")
    pending = await AccessRequest.find_one(
        AccessRequest.email == email, AccessRequest.status == AccessRequestStatus.PENDING
    )
    if pending is not None:
        raise InvitationError("A request for this email is already pending")

    request = AccessRequest(email=email, full_name=full_name, message=message)
    await request.insert()
    logger.info("Access request %s submitted", request.id)
    return request


async def grant_access(user: User) -> Membership:
    """Lift a self-registered requester to a basic member."""
    membership = await get_or_create_membership(user.id, level=MembershipLevel.BASIC)
    if membership.level == MembershipLevel.REQUESTER:
        membership.level = MembershipLevel.BASIC
        membership.invite_quota_monthly = INVITE_QUOTAS[MembershipLevel.BASIC]
        membership.level_assigned_at = utcnow()
        membership.updated_at = utcnow()
        await membership.save()
    if user.access_granted_at is None:
        user.access_granted_at = utcnow()
        await user.save()
    return membership


async def approve_access_request(request: AccessRequest, admin: User) -> AccessRequest:
    """Approve a request and email the applicant a signup link.

    Applicants that already registered are granted access directly.
    """
    if request.status != AccessRequestStatus.PENDING:
        raise InvitationError(f"Request is already {request.status.value}")

    existing = await get_user_by_email(request.email)
    if existing is not None:
        await grant_access(existing)
    else:
        invitation = await generate_admin_invitation(admin, email=request.email)
        request.invitation_code = invitation.code
        if not await get_email_service().send_access_approved_email(request.email, invitation.code):
            logger.error("Access approval email failed for request %s", request.id)

    request.status = AccessRequestStatus.APPROVED
    request.reviewed_at = utcnow()
    request.reviewed_by = admin.id
    await request.save()
    logger.info("Access request %s approved by %s", request.id, admin.id)
    return request


async def reject_access_request(request: AccessRequest, admin: User) -> AccessRequest:
    if request.status != AccessRequestStatus.PENDING:
        raise InvitationError(f"Request is already {request.status.value}")
    request.status = AccessRequestStatus.REJECTED
    request.reviewed_at = utcnow()
    request.reviewed_by = admin.id
    await request.save()
    return request


async def delete_access_requests(ids: list[PydanticObjectId]) -> int:
    result = await AccessRequest.find({"_id": {"$in": ids}}).delete()
    return result.deleted_count if result else 0
