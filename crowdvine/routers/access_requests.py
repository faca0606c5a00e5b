"""Public access request endpoint."""

from fastapi import APIRouter, HTTPException, Request, status

from crowdvine.config import settings
from crowdvine.schemas.membership import AccessRequestCreate
from crowdvine.services.invitations import InvitationError, submit_access_request

from ._common import limiter

router = APIRouter()


@router.post("", status_code=201)
@limiter.limit(lambda: settings.access_request_rate_limit)
async def request_access(request: Request, body: AccessRequestCreate) -> dict:
    """Ask to join without an invitation. One open request per email."""
    try:
        access_request = await submit_access_request(body.email, body.full_name, body.message)
    except InvitationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {
        "id": str(access_request.id),
        "status": access_request.status.value,
        "message": "Thanks! We will be in touch by email.",
    }
