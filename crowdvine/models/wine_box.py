"""Curated wine box document model."""

from datetime import datetime
from typing import Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, Field

from crowdvine.models.base import utcnow


class WineBoxItem(BaseModel):
    wine_id: PydanticObjectId
    quantity: int = Field(default=1, gt=0)


class WineBox(Document):
    """A fixed selection of wines sold together at a box margin."""

    name: str
    handle: Indexed(str, unique=True)
    description: Optional[str] = None
    image_url: Optional[str] = None
    margin_percentage: float = Field(default=10.0, ge=0, lt=100)
    items: list[WineBoxItem] = Field(default_factory=list)
    is_active: bool = True

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "wine_boxes"
