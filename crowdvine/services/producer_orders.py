"""B2B orders that need a producer's approval, and B2B pallet shipments."""

import logging
import math
from dataclasses import dataclass
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import In

from crowdvine.config import settings
from crowdvine.models.base import utcnow
from crowdvine.models.pallet import PalletShipment, ShipmentItem
from crowdvine.models.producer import Producer
from crowdvine.models.reservation import (
    DecisionStatus,
    Reservation,
    ReservationItem,
    ReservationStatus,
)
from crowdvine.models.user import User
from crowdvine.models.wine import Wine
from crowdvine.services.pricing import calculate_b2b_price_excl_vat, cost_in_sek

logger = logging.getLogger(__name__)


class ProducerOrderError(Exception):
    """Raised for invalid B2B orders or producer decisions."""


@dataclass
class ItemDecision:
    item_id: str
    approved_quantity: int
    decision: DecisionStatus


def b2b_margin(wine: Wine) -> float:
    if wine.b2b_margin_percentage is not None:
        return wine.b2b_margin_percentage
    return settings.default_b2b_margin_percentage


def b2b_unit_price_cents(wine: Wine, shipping_per_bottle_sek: float = 0) -> int:
    price = calculate_b2b_price_excl_vat(
        wine.cost_amount,
        wine.exchange_rate,
        wine.alcohol_tax_cents,
        b2b_margin(wine),
        shipping_per_bottle_sek,
    )
    return math.ceil(round(price * 100, 6))


async def place_b2b_order(
    user: User, producer: Producer, lines: list[tuple[PydanticObjectId, int]]
) -> Reservation:
    """Order wines from one producer out of B2B stock, pending their approval."""
    if not lines:
        raise ProducerOrderError("No items in order")
    wines = {w.id: w for w in await Wine.find(In(Wine.id, [wid for wid, _ in lines])).to_list()}

    items = []
    for wine_id, quantity in lines:
        wine = wines.get(wine_id)
        if wine is None or wine.producer_id != producer.id:
            raise ProducerOrderError(f"Wine {wine_id} is not sold by {producer.name}")
        if quantity <= 0:
            raise ProducerOrderError("Quantities must be positive")
        if quantity > wine.b2b_stock:
            raise ProducerOrderError(f"Only {wine.b2b_stock} bottles of {wine.title} in B2B stock")
        items.append(
            ReservationItem(
                wine_id=wine.id,
                quantity=quantity,
                unit_price_cents=b2b_unit_price_cents(wine),
                price_band="b2b",
            )
        )

    subtotal = sum(i.unit_price_cents * i.quantity for i in items)
    reservation = Reservation(
        user_id=user.id,
        producer_id=producer.id,
        address=user.address,
        items=items,
        status=ReservationStatus.PENDING_PRODUCER_APPROVAL,
        subtotal_cents=subtotal,
        total_cents=subtotal,
    )
    await reservation.insert()
    logger.info("B2B order %s placed with producer %s", reservation.id, producer.id)
    return reservation


def recompute_status(items: list[ReservationItem]) -> ReservationStatus:
    if any(i.producer_decision_status == DecisionStatus.PENDING for i in items):
        return ReservationStatus.PENDING_PRODUCER_APPROVAL
    requested = sum(i.quantity for i in items)
    approved = sum(i.producer_approved_quantity or 0 for i in items)
    if approved <= 0:
        return ReservationStatus.DECLINED
    if approved >= requested:
        return ReservationStatus.APPROVED
    return ReservationStatus.PARTLY_APPROVED


def _check_producer(reservation: Reservation, producer: User) -> None:
    """Only the linked producer decides on its orders, admins included."""
    if producer.producer_id is None:
        raise ProducerOrderError("No producer linked to this account")
    if reservation.producer_id != producer.producer_id:
        raise PermissionError("Order belongs to another producer")


def _apply_outcome(reservation: Reservation, actor: User) -> None:
    now = utcnow()
    reservation.status = recompute_status(reservation.items)
    if reservation.status in (ReservationStatus.APPROVED, ReservationStatus.PARTLY_APPROVED):
        reservation.approved_at, reservation.approved_by = now, actor.id
        reservation.rejected_at = reservation.rejected_by = None
    elif reservation.status == ReservationStatus.DECLINED:
        reservation.rejected_at, reservation.rejected_by = now, actor.id
        reservation.approved_at = reservation.approved_by = None
    else:
        reservation.approved_at = reservation.approved_by = None
        reservation.rejected_at = reservation.rejected_by = None
    reservation.updated_at = now


async def decide_order(
    reservation: Reservation, producer: User, decisions: list[ItemDecision]
) -> Reservation:
    """Apply per-item decisions, then recompute the order status.

    All decisions are validated before any is applied.

    Raises:
        ProducerOrderError: Unknown item or quantity out of range.
        PermissionError: The order is addressed to another producer.
    """
    _check_producer(reservation, producer)
    if not decisions:
        raise ProducerOrderError("No item decisions provided")

    items = {i.item_id: i for i in reservation.items}
    for d in decisions:
        item = items.get(d.item_id)
        if item is None:
            raise ProducerOrderError(f"Invalid item id: {d.item_id}")
        if d.approved_quantity < 0 or d.approved_quantity > item.quantity:
            raise ProducerOrderError(f"Approved quantity must be between 0 and {item.quantity}")
        if d.decision == DecisionStatus.DECLINED and d.approved_quantity != 0:
            raise ProducerOrderError("Declined items must have approved quantity 0")
        if d.decision == DecisionStatus.PENDING:
            raise ProducerOrderError("Decision must be approved or declined")

    now = utcnow()
    for d in decisions:
        item = items[d.item_id]
        item.producer_decision_status = d.decision
        item.producer_approved_quantity = (
            0 if d.decision == DecisionStatus.DECLINED else min(item.quantity, d.approved_quantity)
        )
        item.producer_decided_at = now

    _apply_outcome(reservation, producer)
    await reservation.save()
    logger.info("Producer %s decided order %s: %s", producer.id, reservation.id, reservation.status.value)
    return reservation


async def reject_order(reservation: Reservation, producer: User) -> Reservation:
    """Decline every item of an order."""
    _check_producer(reservation, producer)
    now = utcnow()
    for item in reservation.items:
        item.producer_decision_status = DecisionStatus.DECLINED
        item.producer_approved_quantity = 0
        item.producer_decided_at = now
    _apply_outcome(reservation, producer)
    await reservation.save()
    logger.info("Producer %s rejected order %s", producer.id, reservation.id)
    return reservation


async def orders_for_producer(
    producer_id: PydanticObjectId, status: ReservationStatus | None = None
) -> list[Reservation]:
    query = Reservation.find(Reservation.producer_id == producer_id)
    if status is not None:
        query = query.find(Reservation.status == status)
    return await query.sort(-Reservation.created_at).to_list()


# B2B pallet shipments


def build_shipment_items(raw: list[dict[str, Any]]) -> list[ShipmentItem]:
    """Keep rows with a wine and a positive quantity, as whole bottles."""
    return [
        ShipmentItem(
            wine_id=row["wine_id"],
            quantity=max(1, math.floor(row["quantity"])),
            cost_cents_override=row.get("cost_cents_override"),
        )
        for row in raw
        if row.get("wine_id") and (row.get("quantity") or 0) > 0
    ]


async def shipment_cost_summary(shipment: PalletShipment) -> dict[str, Any]:
    """Per-item landed cost, shipping share and B2B price for a shipment."""
    total_bottles = sum(i.quantity for i in shipment.items)
    shipping_per_bottle_cents = shipment.cost_cents / total_bottles if total_bottles else 0.0
    wines = {
        w.id: w
        for w in await Wine.find(In(Wine.id, [i.wine_id for i in shipment.items])).to_list()
    }

    rows = []
    total_cost_cents = 0.0
    total_value_cents = 0
    for item in shipment.items:
        wine = wines.get(item.wine_id)
        if item.cost_cents_override is not None:
            unit_cost_cents = float(item.cost_cents_override)
        elif wine is not None:
            unit_cost_cents = cost_in_sek(wine.cost_amount, wine.exchange_rate, wine.alcohol_tax_cents) * 100
        else:
            unit_cost_cents = 0.0

        b2b_price_cents = None
        if wine is not None:
            b2b_price_cents = b2b_unit_price_cents(wine, shipping_per_bottle_cents / 100)
            total_value_cents += b2b_price_cents * item.quantity

        line_cost = (unit_cost_cents + shipping_per_bottle_cents) * item.quantity
        total_cost_cents += line_cost
        rows.append(
            {
                "wine_id": str(item.wine_id),
                "title": wine.title if wine else None,
                "quantity": item.quantity,
                "unit_cost_cents": round(unit_cost_cents),
                "shipping_per_bottle_cents": round(shipping_per_bottle_cents),
                "landed_cost_cents": round(unit_cost_cents + shipping_per_bottle_cents),
                "b2b_price_cents": b2b_price_cents,
                "line_cost_cents": round(line_cost),
            }
        )

    return {
        "shipment_id": str(shipment.id),
        "name": shipment.name,
        "total_bottles": total_bottles,
        "shipping_cost_cents": shipment.cost_cents,
        "shipping_per_bottle_cents": round(shipping_per_bottle_cents),
        "total_cost_cents": round(total_cost_cents),
        "total_b2b_value_cents": total_value_cents,
        "items": rows,
    }
