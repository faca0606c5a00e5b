"""Pallet documents: shared shipments and B2B shipment records."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, Field

from crowdvine.models.base import utcnow


class PalletStatus(str, Enum):
    OPEN = "open"
    COMPLETE = "complete"
    AWAITING_PICKUP = "awaiting_pickup"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class CompletionCondition(BaseModel):
    metric: Literal["bottles", "profit_sek"]
    op: Literal[">=", ">", "<=", "<"]
    value: float = 0


class CompletionGroup(BaseModel):
    operator: Literal["AND", "OR"] = "AND"
    conditions: list[CompletionCondition] = Field(default_factory=list)


class CompletionRules(BaseModel):
    """Rules deciding when a pallet is full enough to ship.

    SEQUENTIAL reads as IF / ELSE IF groups; COMBINE joins group results
    with a top-level operator.
    """

    mode: Literal["SEQUENTIAL", "COMBINE"] = "SEQUENTIAL"
    operator: Literal["AND", "OR"] = "OR"
    groups: list[CompletionGroup] = Field(default_factory=list)


class Pallet(Document):
    """A consolidated shipment filled by member reservations."""

    name: Indexed(str)
    description: Optional[str] = None
    pickup_zone_id: Optional[PydanticObjectId] = None
    delivery_zone_id: Optional[PydanticObjectId] = None

    cost_cents: int = 0
    bottle_capacity: int = Field(default=720, ge=0)

    status: PalletStatus = PalletStatus.OPEN
    status_mode: Literal["auto", "manual"] = "auto"
    is_complete: bool = False
    completed_at: Optional[datetime] = None
    payment_deadline: Optional[datetime] = None
    completion_rules: Optional[CompletionRules] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "pallets"
        indexes = [
            "status",
            [("pickup_zone_id", 1), ("delivery_zone_id", 1)],
        ]

    def __repr__(self) -> str:
        return f"<Pallet(id={self.id}, name={self.name}, status={self.status.value})>"


class ShipmentItem(BaseModel):
    wine_id: PydanticObjectId
    quantity: int = Field(gt=0)
    cost_cents_override: Optional[int] = None


class PalletShipment(Document):
    """A B2B pallet shipment with its own freight cost."""

    name: str
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cost_cents: int = 0
    notes: Optional[str] = None
    items: list[ShipmentItem] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "pallet_shipments"
