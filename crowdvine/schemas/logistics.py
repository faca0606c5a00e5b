"""Pydantic schemas for zones, pallets and B2B shipments."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from crowdvine.models.pallet import CompletionRules, PalletStatus
from crowdvine.models.zone import ZoneType
from crowdvine.schemas.common import DocumentResponse, object_id_str


class ZoneBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    zone_type: ZoneType
    center_lat: float | None = Field(None, ge=-90, le=90)
    center_lon: float | None = Field(None, ge=-180, le=180)
    radius_km: float | None = Field(None, gt=0)
    country_code: str | None = Field(None, min_length=2, max_length=2)
    description: str | None = Field(None, max_length=2000)


class ZoneCreate(ZoneBase):
    pass


class ZoneUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    zone_type: ZoneType | None = None
    center_lat: float | None = Field(None, ge=-90, le=90)
    center_lon: float | None = Field(None, ge=-180, le=180)
    radius_km: float | None = Field(None, gt=0)
    country_code: str | None = Field(None, min_length=2, max_length=2)
    description: str | None = Field(None, max_length=2000)


class ZoneResponse(DocumentResponse, ZoneBase):
    created_at: datetime


class PalletBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    pickup_zone_id: str | None = None
    delivery_zone_id: str | None = None
    cost_cents: int = Field(0, ge=0)
    bottle_capacity: int = Field(720, ge=0)
    completion_rules: CompletionRules | None = None


class PalletCreate(PalletBase):
    pass


class PalletUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    pickup_zone_id: str | None = None
    delivery_zone_id: str | None = None
    cost_cents: int | None = Field(None, ge=0)
    bottle_capacity: int | None = Field(None, ge=0)
    completion_rules: CompletionRules | None = None
    status_mode: Literal["auto", "manual"] | None = None


class PalletStatusUpdate(BaseModel):
    status: PalletStatus


class MoveReservation(BaseModel):
    reservation_id: str
    target_pallet_id: str


class ShipmentItemIn(BaseModel):
    wine_id: str
    quantity: float = Field(..., gt=0)
    cost_cents_override: int | None = Field(None, ge=0)


class ShipmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cost_cents: int = Field(0, ge=0)
    notes: str | None = Field(None, max_length=2000)
    items: list[ShipmentItemIn] = Field(default_factory=list)


class ShipmentUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cost_cents: int | None = Field(None, ge=0)
    notes: str | None = Field(None, max_length=2000)
    items: list[ShipmentItemIn] | None = None


class ShipmentItemResponse(BaseModel):
    wine_id: str
    quantity: int
    cost_cents_override: int | None = None

    @field_validator("wine_id", mode="before")
    @classmethod
    def convert_wine_id(cls, v):
        return object_id_str(v)


class ShipmentResponse(DocumentResponse):
    name: str
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cost_cents: int
    notes: str | None = None
    items: list[ShipmentItemResponse] = []
    created_at: datetime
    updated_at: datetime
