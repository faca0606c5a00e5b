"""Reservation documents: member claims on bottles in a pallet."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, Field

from crowdvine.models.base import utcnow
from crowdvine.models.user import Address


class ReservationStatus(str, Enum):
    PLACED = "placed"
    PENDING_PRODUCER_APPROVAL = "pending_producer_approval"
    APPROVED = "approved"
    PARTLY_APPROVED = "partly_approved"
    DECLINED = "declined"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


class DecisionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


# Reservations that hold bottles on a pallet
ACTIVE_RESERVATION_STATUSES = (
    ReservationStatus.PLACED,
    ReservationStatus.APPROVED,
    ReservationStatus.PARTLY_APPROVED,
    ReservationStatus.PENDING_PAYMENT,
    ReservationStatus.CONFIRMED,
)


class ReservationItem(BaseModel):
    item_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    wine_id: PydanticObjectId
    quantity: int = Field(gt=0)
    unit_price_cents: int = 0
    price_band: str = "market"

    # Producer approval (B2B orders)
    producer_decision_status: DecisionStatus = DecisionStatus.PENDING
    producer_approved_quantity: Optional[int] = None
    producer_decided_at: Optional[datetime] = None


class Reservation(Document):
    """A member order against a pallet.

    Each item doubles as a booking row in the back office.
    """

    user_id: Indexed(PydanticObjectId)
    cart_id: Optional[str] = None
    address: Optional[Address] = None
    pallet_id: Optional[Indexed(PydanticObjectId)] = None
    pickup_zone_id: Optional[PydanticObjectId] = None
    delivery_zone_id: Optional[PydanticObjectId] = None
    # Set for B2B orders that need a producer decision
    producer_id: Optional[Indexed(PydanticObjectId)] = None

    items: list[ReservationItem] = Field(default_factory=list)
    status: ReservationStatus = ReservationStatus.PLACED
    payment_status: PaymentStatus = PaymentStatus.PENDING

    subtotal_cents: int = 0
    discount_cents: int = 0
    shipping_cents: int = 0
    total_cents: int = 0
    discount_code: Optional[str] = None
    buff_percentage: float = 0.0

    payment_link: Optional[str] = None
    payment_session_id: Optional[str] = None
    payment_intent_id: Optional[Indexed(str)] = None
    payment_deadline: Optional[datetime] = None

    approved_at: Optional[datetime] = None
    approved_by: Optional[PydanticObjectId] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[PydanticObjectId] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "reservations"
        indexes = [
            "status",
            [("pallet_id", 1), ("status", 1)],
        ]

    @property
    def bottle_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, status={self.status.value}, bottles={self.bottle_count})>"
