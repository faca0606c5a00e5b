"""Pydantic schemas for wine tastings."""

from pydantic import BaseModel, Field

from crowdvine.models.tasting import TastingStatus


class TastingCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    wine_ids: list[str] = Field(..., min_length=1)
    notes: str | None = Field(None, max_length=2000)


class TastingUpdate(BaseModel):
    current_wine_index: int | None = Field(None, ge=0)
    status: TastingStatus | None = None
    notes: str | None = Field(None, max_length=2000)


class TastingJoin(BaseModel):
    # Shown for guests; members are named from their account
    name: str | None = Field(None, max_length=255)


class RatingCreate(BaseModel):
    participant_id: str
    wine_id: str
    rating: int = Field(..., ge=0, le=100)
    comment: str | None = Field(None, max_length=2000)
