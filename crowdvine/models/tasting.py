"""Wine tasting sessions, their participants and ratings."""

from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field
from pymongo import ASCENDING, IndexModel

from crowdvine.models.base import utcnow


class TastingStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WineTasting(Document):
    """A hosted tasting: a list of wines tasted in order, joined by code."""

    session_code: Indexed(str, unique=True)
    name: str
    created_by: PydanticObjectId
    wine_ids: list[PydanticObjectId] = Field(default_factory=list)
    notes: Optional[str] = None
    status: TastingStatus = TastingStatus.ACTIVE
    current_wine_index: int = 0

    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    class Settings:
        name = "wine_tasting_sessions"
        indexes = ["status"]


class TastingParticipant(Document):
    """Someone who joined a tasting. Guests join without an account."""

    tasting_id: Indexed(PydanticObjectId)
    participant_code: Indexed(str, unique=True)
    user_id: Optional[PydanticObjectId] = None
    name: Optional[str] = None
    email: Optional[str] = None
    is_anonymous: bool = True

    joined_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "wine_tasting_participants"
        indexes = [[("tasting_id", 1), ("user_id", 1)]]


class TastingRating(Document):
    """One participant's score (0-100) for one wine in a tasting."""

    tasting_id: Indexed(PydanticObjectId)
    participant_id: PydanticObjectId
    wine_id: PydanticObjectId
    rating: int = Field(ge=0, le=100)
    comment: Optional[str] = None

    tasted_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "wine_tasting_ratings"
        indexes = [
            IndexModel(
                [("tasting_id", ASCENDING), ("participant_id", ASCENDING), ("wine_id", ASCENDING)],
                unique=True,
            )
        ]
