"""Admin invitation codes, discount codes and access requests."""

import logging
from typing import Any

from fastapi import HTTPException, Query, status

from crowdvine.models.discount import DiscountCode
from crowdvine.models.invitation import AccessRequest, AccessRequestStatus, InvitationCode
from crowdvine.schemas.membership import AccessRequestIds, AdminInvitationCreate
from crowdvine.services.auth import RequireAdmin
from crowdvine.services.discounts import code_to_dict
from crowdvine.services.invitations import (
    InvitationError,
    approve_access_request,
    cleanup_invitations,
    delete_access_requests,
    generate_admin_invitation,
    invitation_to_dict,
    reject_access_request,
)

from .._common import get_or_404, optional_object_id

logger = logging.getLogger(__name__)


def _access_request_to_dict(request: AccessRequest) -> dict[str, Any]:
    return {
        "id": str(request.id),
        "email": request.email,
        "full_name": request.full_name,
        "message": request.message,
        "status": request.status.value,
        "invitation_code": request.invitation_code,
        "reviewed_at": request.reviewed_at,
        "reviewed_by": str(request.reviewed_by) if request.reviewed_by else None,
        "created_at": request.created_at,
    }


async def list_invitations(
    admin: RequireAdmin,
    active_only: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
) -> list[dict[str, Any]]:
    query = InvitationCode.find(InvitationCode.is_active == True) if active_only else InvitationCode.find_all()  # noqa: E712
    invitations = await query.sort(-InvitationCode.created_at).skip(skip).limit(limit).to_list()
    return [invitation_to_dict(i) for i in invitations]


async def create_invitation(body: AdminInvitationCreate, admin: RequireAdmin) -> dict[str, Any]:
    """Issue a code outside any monthly quota."""
    try:
        invitation = await generate_admin_invitation(
            admin, expires_in_days=body.expires_in_days, max_uses=body.max_uses, email=body.email
        )
    except InvitationError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    logger.info("Admin %s created invitation %s", admin.id, invitation.id)
    return invitation_to_dict(invitation)


async def run_invitation_cleanup(admin: RequireAdmin) -> dict[str, int]:
    return {"deleted": await cleanup_invitations()}


async def list_discount_codes(
    admin: RequireAdmin,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
) -> list[dict[str, Any]]:
    codes = await DiscountCode.find_all().sort(-DiscountCode.created_at).skip(skip).limit(limit).to_list()
    return [code_to_dict(c) for c in codes]


# Access requests


async def list_access_requests(
    admin: RequireAdmin, status_filter: AccessRequestStatus | None = Query(None, alias="status")
) -> list[dict[str, Any]]:
    query = (
        AccessRequest.find(AccessRequest.status == status_filter)
        if status_filter
        else AccessRequest.find_all()
    )
    requests = await query.sort(-AccessRequest.created_at).to_list()
    return [_access_request_to_dict(r) for r in requests]


async def approve_request(request_id: str, admin: RequireAdmin) -> dict[str, Any]:
    request = await get_or_404(AccessRequest, request_id, "Access request")
    try:
        request = await approve_access_request(request, admin)
    except InvitationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _access_request_to_dict(request)


async def reject_request(request_id: str, admin: RequireAdmin) -> dict[str, Any]:
    request = await get_or_404(AccessRequest, request_id, "Access request")
    try:
        request = await reject_access_request(request, admin)
    except InvitationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _access_request_to_dict(request)


async def bulk_delete_requests(body: AccessRequestIds, admin: RequireAdmin) -> dict[str, int]:
    ids = [optional_object_id(i, "Access request") for i in body.ids]
    deleted = await delete_access_requests(ids)
    logger.info("Admin %s deleted %d access requests", admin.id, deleted)
    return {"deleted": deleted}
