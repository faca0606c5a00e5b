"""Wine tasting sessions: hosting, joining by code, scoring and the summary."""

import logging
import secrets
import string
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import In
from pymongo.errors import DuplicateKeyError

from crowdvine.models.base import utcnow
from crowdvine.models.producer import Producer
from crowdvine.models.tasting import TastingParticipant, TastingRating, TastingStatus, WineTasting
from crowdvine.models.user import User
from crowdvine.models.wine import Wine
from crowdvine.services.analytics import posthog_service
from crowdvine.services.catalog import wine_card

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
SESSION_CODE_LENGTH = 6
PARTICIPANT_CODE_LENGTH = 8
MAX_RATING = 100


class TastingError(Exception):
    """Raised when a tasting cannot be created, joined or scored."""


class TastingNotFoundError(TastingError):
    pass


def generate_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _round_average(values: list[int]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 1)


def tasting_to_dict(tasting: WineTasting) -> dict[str, Any]:
    return {
        "id": str(tasting.id),
        "session_code": tasting.session_code,
        "name": tasting.name,
        "created_by": str(tasting.created_by),
        "wine_ids": [str(w) for w in tasting.wine_ids],
        "notes": tasting.notes,
        "status": tasting.status.value,
        "current_wine_index": tasting.current_wine_index,
        "created_at": tasting.created_at,
        "completed_at": tasting.completed_at,
    }


def participant_to_dict(participant: TastingParticipant) -> dict[str, Any]:
    return {
        "id": str(participant.id),
        "tasting_id": str(participant.tasting_id),
        "participant_code": participant.participant_code,
        "user_id": str(participant.user_id) if participant.user_id else None,
        "name": participant.name,
        "is_anonymous": participant.is_anonymous,
        "joined_at": participant.joined_at,
    }


def rating_to_dict(rating: TastingRating) -> dict[str, Any]:
    return {
        "id": str(rating.id),
        "tasting_id": str(rating.tasting_id),
        "participant_id": str(rating.participant_id),
        "wine_id": str(rating.wine_id),
        "rating": rating.rating,
        "comment": rating.comment,
        "tasted_at": rating.tasted_at,
    }


async def create_tasting(
    host: User, name: str, wine_ids: list[PydanticObjectId], notes: str | None = None
) -> WineTasting:
    """Start a tasting of the given wines, in the given order.

    Raises:
        TastingError: No name, no wines, or a wine that does not exist.
    """
    name = (name or "").strip()
    if not name or not wine_ids:
        raise TastingError("Name and at least one wine are required")
    found = await Wine.find(In(Wine.id, wine_ids)).count()
    if found != len(wine_ids):
        raise TastingError("One or more wine IDs are invalid")

    for _ in range(5):
        tasting = WineTasting(
            session_code=generate_code(SESSION_CODE_LENGTH),
            name=name,
            created_by=host.id,
            wine_ids=wine_ids,
            notes=notes or None,
        )
        try:
            await tasting.insert()
        except DuplicateKeyError:
            continue
        logger.info("Tasting %s (%s) created by %s", tasting.id, tasting.session_code, host.id)
        return tasting
    raise TastingError("Could not generate a unique session code")


async def list_tastings(status: TastingStatus | None = None) -> list[WineTasting]:
    query = WineTasting.find(WineTasting.status == status) if status else WineTasting.find_all()
    return await query.sort(-WineTasting.created_at).to_list()


async def find_participant(tasting: WineTasting, user: User | None) -> TastingParticipant | None:
    if user is None:
        return None
    return await TastingParticipant.find_one(
        TastingParticipant.tasting_id == tasting.id,
        TastingParticipant.user_id == user.id,
    )


async def can_view(tasting: WineTasting, user: User | None) -> bool:
    """Active tastings are open to anyone holding the link; closed ones to
    admins and the people who took part."""
    if tasting.status == TastingStatus.ACTIVE:
        return True
    if user is None:
        return False
    if user.is_admin:
        return True
    return await find_participant(tasting, user) is not None


async def tasting_wines(tasting: WineTasting) -> list[dict[str, Any]]:
    """Wine cards in tasting order. Wines deleted since are left out."""
    wines = {w.id: w for w in await Wine.find(In(Wine.id, tasting.wine_ids)).to_list()}
    producer_ids = list({w.producer_id for w in wines.values() if w.producer_id})
    producers = {p.id: p for p in await Producer.find(In(Producer.id, producer_ids)).to_list()}
    return [
        wine_card(wines[wine_id], producers.get(wines[wine_id].producer_id))
        for wine_id in tasting.wine_ids
        if wine_id in wines
    ]


async def update_tasting(
    tasting: WineTasting,
    current_wine_index: int | None = None,
    status: TastingStatus | None = None,
    notes: str | None = None,
) -> WineTasting:
    """Move to another wine, change the status or edit the notes.

    Raises:
        TastingError: Nothing to update or the wine index is out of range.
    """
    if current_wine_index is None and status is None and notes is None:
        raise TastingError("No valid updates provided")
    if current_wine_index is not None:
        if not 0 <= current_wine_index < len(tasting.wine_ids):
            raise TastingError(f"Wine index must be between 0 and {len(tasting.wine_ids) - 1}")
        tasting.current_wine_index = current_wine_index
    if status is not None:
        tasting.status = status
        tasting.completed_at = utcnow() if status == TastingStatus.COMPLETED else None
    if notes is not None:
        tasting.notes = notes or None
    await tasting.save()
    return tasting


async def delete_tasting(tasting: WineTasting) -> None:
    """Delete a tasting with its participants and ratings."""
    await TastingRating.find(TastingRating.tasting_id == tasting.id).delete()
    await TastingParticipant.find(TastingParticipant.tasting_id == tasting.id).delete()
    await tasting.delete()
    logger.info("Tasting %s deleted", tasting.id)


async def join_tasting(
    code: str, user: User | None = None, name: str | None = None
) -> tuple[TastingParticipant, bool]:
    """Join an active tasting by its code. Returns the participant and
    whether it was created; members who join again get their old seat.

    Raises:
        TastingNotFoundError: No tasting with this code.
        TastingError: The tasting is not active.
    """
    tasting = await WineTasting.find_one(WineTasting.session_code == code.strip().upper())
    if tasting is None:
        raise TastingNotFoundError("Session not found")
    if tasting.status != TastingStatus.ACTIVE:
        raise TastingError("Session is not active")

    existing = await find_participant(tasting, user)
    if existing is not None:
        return existing, False

    for _ in range(5):
        participant = TastingParticipant(
            tasting_id=tasting.id,
            participant_code=generate_code(PARTICIPANT_CODE_LENGTH),
            user_id=user.id if user else None,
            name=(user.full_name if user else None) or name,
            email=user.email if user else None,
            is_anonymous=user is None,
        )
        try:
            await participant.insert()
        except DuplicateKeyError:
            continue
        logger.info("Participant %s joined tasting %s", participant.id, tasting.id)
        posthog_service.capture(
            distinct_id=str(user.id) if user else participant.participant_code,
            event="tasting_joined",
            properties={"tasting_id": str(tasting.id), "anonymous": user is None},
        )
        return participant, True
    raise TastingError("Could not generate a unique participant code")


async def _existing_rating(
    tasting_id: PydanticObjectId, participant_id: PydanticObjectId, wine_id: PydanticObjectId
) -> TastingRating | None:
    return await TastingRating.find_one(
        TastingRating.tasting_id == tasting_id,
        TastingRating.participant_id == participant_id,
        TastingRating.wine_id == wine_id,
    )


async def save_rating(
    tasting: WineTasting,
    participant_id: PydanticObjectId,
    wine_id: PydanticObjectId,
    rating: int,
    comment: str | None = None,
) -> TastingRating:
    """Record or replace a participant's score for one wine.

    Raises:
        TastingNotFoundError: Unknown participant.
        TastingError: Score out of range, participant from another tasting,
            or a wine that is not part of the tasting.
    """
    if not 0 <= rating <= MAX_RATING:
        raise TastingError(f"Rating must be between 0 and {MAX_RATING}")
    participant = await TastingParticipant.get(participant_id)
    if participant is None:
        raise TastingNotFoundError("Participant not found")
    if participant.tasting_id != tasting.id:
        raise TastingError("Participant does not belong to this session")
    if wine_id not in tasting.wine_ids:
        raise TastingError("Wine is not in this session")

    existing = await _existing_rating(tasting.id, participant_id, wine_id)
    if existing is None:
        existing = TastingRating(
            tasting_id=tasting.id,
            participant_id=participant_id,
            wine_id=wine_id,
            rating=rating,
            comment=comment or None,
        )
        try:
            await existing.insert()
            return existing
        except DuplicateKeyError:
            # Saved concurrently from another device; update that one
            existing = await _existing_rating(tasting.id, participant_id, wine_id)
    existing.rating = rating
    existing.comment = comment or None
    existing.tasted_at = utcnow()
    await existing.save()
    return existing


async def ratings_for(
    tasting: WineTasting,
    participant_id: PydanticObjectId | None = None,
    wine_id: PydanticObjectId | None = None,
) -> list[TastingRating]:
    query = TastingRating.find(TastingRating.tasting_id == tasting.id)
    if participant_id is not None:
        query = query.find(TastingRating.participant_id == participant_id)
    if wine_id is not None:
        query = query.find(TastingRating.wine_id == wine_id)
    return await query.sort(-TastingRating.created_at).to_list()


async def tasting_summary(tasting: WineTasting) -> dict[str, Any]:
    """Per-wine scores and averages, with totals for the whole tasting.

    Averages are rounded to one decimal and are None for unrated wines.
    """
    ratings = await ratings_for(tasting)
    participants = {
        p.id: p
        for p in await TastingParticipant.find(TastingParticipant.tasting_id == tasting.id).to_list()
    }

    wines = []
    for card in await tasting_wines(tasting):
        wine_ratings = [r for r in ratings if str(r.wine_id) == card["id"]]
        wines.append(
            {
                "wine": card,
                "total_ratings": len(wine_ratings),
                "average_rating": _round_average([r.rating for r in wine_ratings]),
                "ratings": [
                    {
                        "rating": r.rating,
                        "comment": r.comment,
                        "participant": (
                            participant_to_dict(participants[r.participant_id])
                            if r.participant_id in participants
                            else None
                        ),
                        "tasted_at": r.tasted_at,
                    }
                    for r in wine_ratings
                ],
            }
        )

    return {
        "session": {
            "id": str(tasting.id),
            "name": tasting.name,
            "status": tasting.status.value,
            "created_at": tasting.created_at,
            "completed_at": tasting.completed_at,
        },
        "statistics": {
            "total_wines": len(wines),
            "total_participants": len(participants),
            "total_ratings": len(ratings),
            "overall_average": _round_average([r.rating for r in ratings]),
        },
        "wines": wines,
    }


async def tastings_for_user(user: User) -> list[dict[str, Any]]:
    """Tastings the member joined, newest first, with how many wines they scored."""
    participants = await TastingParticipant.find(TastingParticipant.user_id == user.id).to_list()
    if not participants:
        return []
    by_tasting = {p.tasting_id: p for p in participants}
    tastings = await WineTasting.find(In(WineTasting.id, list(by_tasting))).sort(
        -WineTasting.created_at
    ).to_list()

    result = []
    for tasting in tastings:
        participant = by_tasting[tasting.id]
        rated = await TastingRating.find(
            TastingRating.tasting_id == tasting.id,
            TastingRating.participant_id == participant.id,
        ).count()
        result.append({**tasting_to_dict(tasting), "participant_id": str(participant.id), "rated_wines": rated})
    return result
