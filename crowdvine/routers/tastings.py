"""Wine tasting endpoints: admins host, anyone with the code joins and scores."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from crowdvine.models.tasting import TastingStatus, WineTasting
from crowdvine.schemas.tasting import RatingCreate, TastingCreate, TastingJoin, TastingUpdate
from crowdvine.services.auth import CurrentUser, RequireAdmin, RequireAuth
from crowdvine.services.tastings import (
    TastingError,
    TastingNotFoundError,
    can_view,
    create_tasting,
    delete_tasting,
    join_tasting,
    list_tastings,
    participant_to_dict,
    rating_to_dict,
    ratings_for,
    save_rating,
    tasting_summary,
    tasting_to_dict,
    tasting_wines,
    tastings_for_user,
    update_tasting,
)

from ._common import bad_request, get_or_404, optional_object_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def list_sessions(
    admin: RequireAdmin, status_filter: TastingStatus | None = None
) -> list[dict[str, Any]]:
    return [tasting_to_dict(t) for t in await list_tastings(status_filter)]


@router.post("", status_code=201)
async def create_session(body: TastingCreate, admin: RequireAdmin) -> dict[str, Any]:
    """Start a tasting; wines are tasted in the order given."""
    wine_ids = [optional_object_id(w, "Wine") for w in body.wine_ids]
    try:
        tasting = await create_tasting(admin, body.name, wine_ids, body.notes)
    except TastingError as e:
        raise bad_request(str(e))
    return tasting_to_dict(tasting)


@router.get("/mine")
async def my_sessions(current_user: RequireAuth) -> list[dict[str, Any]]:
    return await tastings_for_user(current_user)


@router.post("/by-code/{code}/join", status_code=201)
async def join_session(code: str, current_user: CurrentUser, body: TastingJoin | None = None) -> dict[str, Any]:
    """Join by session code. Guests get an anonymous seat."""
    try:
        participant, _ = await join_tasting(code, current_user, body.name if body else None)
    except TastingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except TastingError as e:
        raise bad_request(str(e))
    return participant_to_dict(participant)


@router.get("/{tasting_id}")
async def get_session(tasting_id: str, current_user: CurrentUser) -> dict[str, Any]:
    tasting = await get_or_404(WineTasting, tasting_id, "Session")
    if not await can_view(tasting, current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins and participants can see a closed session",
        )
    return {**tasting_to_dict(tasting), "wines": await tasting_wines(tasting)}


@router.patch("/{tasting_id}")
async def update_session(tasting_id: str, body: TastingUpdate, admin: RequireAdmin) -> dict[str, Any]:
    """Move to the next wine, close the session or edit the notes."""
    tasting = await get_or_404(WineTasting, tasting_id, "Session")
    try:
        tasting = await update_tasting(tasting, body.current_wine_index, body.status, body.notes)
    except TastingError as e:
        raise bad_request(str(e))
    return tasting_to_dict(tasting)


@router.delete("/{tasting_id}")
async def delete_session(tasting_id: str, admin: RequireAdmin) -> dict[str, Any]:
    tasting = await get_or_404(WineTasting, tasting_id, "Session")
    await delete_tasting(tasting)
    logger.info("Admin %s deleted tasting %s", admin.id, tasting_id)
    return {"success": True, "message": "Session deleted successfully"}


@router.get("/{tasting_id}/ratings")
async def list_ratings(
    tasting_id: str, participant_id: str | None = None, wine_id: str | None = None
) -> list[dict[str, Any]]:
    tasting = await get_or_404(WineTasting, tasting_id, "Session")
    ratings = await ratings_for(
        tasting,
        optional_object_id(participant_id, "Participant"),
        optional_object_id(wine_id, "Wine"),
    )
    return [rating_to_dict(r) for r in ratings]


@router.post("/{tasting_id}/ratings", status_code=201)
async def rate_wine(tasting_id: str, body: RatingCreate) -> dict[str, Any]:
    """Score a wine from 0 to 100. Scoring it again replaces the score."""
    tasting = await get_or_404(WineTasting, tasting_id, "Session")
    try:
        rating = await save_rating(
            tasting,
            optional_object_id(body.participant_id, "Participant"),
            optional_object_id(body.wine_id, "Wine"),
            body.rating,
            body.comment,
        )
    except TastingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except TastingError as e:
        raise bad_request(str(e))
    return rating_to_dict(rating)


@router.get("/{tasting_id}/summary")
async def session_summary(tasting_id: str) -> dict[str, Any]:
    tasting = await get_or_404(WineTasting, tasting_id, "Session")
    return await tasting_summary(tasting)
