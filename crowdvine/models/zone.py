"""Pallet zone document model."""

from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import Field

from crowdvine.models.base import utcnow


class ZoneType(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class PalletZone(Document):
    """A geographic circle used to route pallets between producers and members."""

    name: Indexed(str)
    zone_type: ZoneType
    center_lat: Optional[float] = None
    center_lon: Optional[float] = None
    radius_km: Optional[float] = Field(default=None, gt=0)
    country_code: Optional[str] = None
    description: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "pallet_zones"
        indexes = ["zone_type"]

    def __repr__(self) -> str:
        return f"<PalletZone(id={self.id}, name={self.name}, type={self.zone_type.value})>"
