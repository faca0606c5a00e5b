"""Helpers shared by the API routers."""

import logging
from typing import TypeVar

from beanie import Document, PydanticObjectId
from bson.errors import InvalidId
from fastapi import HTTPException, status
from pydantic import ValidationError
from slowapi import Limiter
from slowapi.util import get_remote_address

from crowdvine.config import settings

logger = logging.getLogger(__name__)

# Rate limiter; routes with their own limits add them by decorator
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
)

DocumentT = TypeVar("DocumentT", bound=Document)


def parse_object_id(value: str, label: str = "Object") -> PydanticObjectId:
    """Parse an id from the path, treating malformed ids as not found."""
    try:
        return PydanticObjectId(value)
    except (InvalidId, ValidationError, TypeError) as e:
        logger.debug("Invalid %s ID format: %s - %s", label.lower(), value, e)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} with ID {value} not found",
        )


def optional_object_id(value: str | None, label: str = "Object") -> PydanticObjectId | None:
    """Parse an id from a request body; malformed ids are a bad request."""
    if value is None:
        return None
    try:
        return PydanticObjectId(value)
    except (InvalidId, ValidationError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label.lower()} ID: {value}",
        )


async def get_or_404(model: type[DocumentT], document_id: str, label: str) -> DocumentT:
    document = await model.get(parse_object_id(document_id, label))
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} with ID {document_id} not found",
        )
    return document


def bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def conflict(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
