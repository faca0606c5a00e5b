"""Pydantic schemas for curated wine boxes."""

from pydantic import BaseModel, Field


class WineBoxItemIn(BaseModel):
    wine_id: str
    quantity: int = Field(1, gt=0, le=100)


class WineBoxCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    handle: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=5000)
    image_url: str | None = Field(None, max_length=1000)
    margin_percentage: float = Field(10.0, ge=0, lt=100)
    is_active: bool = True
    items: list[WineBoxItemIn] = Field(default_factory=list)


class WineBoxUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    handle: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=5000)
    image_url: str | None = Field(None, max_length=1000)
    margin_percentage: float | None = Field(None, ge=0, lt=100)
    is_active: bool | None = None


class WineBoxItemsUpdate(BaseModel):
    items: list[WineBoxItemIn]
