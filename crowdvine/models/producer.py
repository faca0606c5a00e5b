"""Producer and producer group documents."""

from datetime import datetime
from typing import Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field

from crowdvine.models.base import utcnow


class Producer(Document):
    """A wine producer supplying bottles to pallets."""

    name: Indexed(str)
    handle: Indexed(str, unique=True)
    description: Optional[str] = None
    region: Optional[str] = None
    country_code: Optional[str] = None

    # Pickup location
    address_street: Optional[str] = None
    address_postcode: Optional[str] = None
    address_city: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    pickup_zone_id: Optional[PydanticObjectId] = None

    logo_url: Optional[str] = None
    is_active: bool = True

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "producers"
        indexes = ["pickup_zone_id"]

    def __repr__(self) -> str:
        return f"<Producer(id={self.id}, name={self.name})>"


class ProducerGroup(Document):
    """Producers whose bottles count together towards the six-bottle rule."""

    name: str
    description: Optional[str] = None
    producer_ids: list[PydanticObjectId] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "producer_groups"
        indexes = ["producer_ids"]
