"""Producer endpoints for B2B orders, and B2B order placement."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from crowdvine.models.producer import Producer
from crowdvine.models.reservation import Reservation, ReservationStatus
from crowdvine.schemas.orders import B2BOrderRequest, ProducerDecisionRequest
from crowdvine.services.auth import RequireMember, RequireProducer
from crowdvine.services.checkout import reservation_to_dict
from crowdvine.services.producer_orders import (
    ItemDecision,
    ProducerOrderError,
    decide_order,
    orders_for_producer,
    place_b2b_order,
    reject_order,
)

from ._common import get_or_404, optional_object_id

logger = logging.getLogger(__name__)

router = APIRouter()


async def _order_for(reservation_id: str) -> Reservation:
    reservation = await get_or_404(Reservation, reservation_id, "Order")
    if reservation.producer_id is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Order with ID {reservation_id} not found",
        )
    return reservation


@router.get("/orders")
async def list_orders(
    current_user: RequireProducer,
    producer_id: str | None = None,
    status_filter: ReservationStatus | None = None,
) -> list[dict[str, Any]]:
    """Orders addressed to my producer. Admins pass the producer id."""
    if current_user.is_admin and producer_id:
        target = optional_object_id(producer_id, "Producer")
    else:
        target = current_user.producer_id
    if target is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No producer linked to this account",
        )
    orders = await orders_for_producer(target, status_filter)
    return [reservation_to_dict(o) for o in orders]


@router.post("/orders/{reservation_id}/decision")
async def decide(
    reservation_id: str, body: ProducerDecisionRequest, current_user: RequireProducer
) -> dict[str, Any]:
    """Approve or decline each item, possibly approving fewer bottles."""
    reservation = await _order_for(reservation_id)
    decisions = [ItemDecision(d.item_id, d.approved_quantity, d.decision) for d in body.decisions]
    try:
        reservation = await decide_order(reservation, current_user, decisions)
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ProducerOrderError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return reservation_to_dict(reservation)


@router.post("/orders/{reservation_id}/reject")
async def reject(reservation_id: str, current_user: RequireProducer) -> dict[str, Any]:
    reservation = await _order_for(reservation_id)
    try:
        reservation = await reject_order(reservation, current_user)
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ProducerOrderError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return reservation_to_dict(reservation)


@router.post("/b2b-orders", status_code=201)
async def place_order(body: B2BOrderRequest, current_user: RequireMember) -> dict[str, Any]:
    """Order from one producer's B2B stock; the producer approves it."""
    producer = await get_or_404(Producer, body.producer_id, "Producer")
    lines = [(optional_object_id(line.wine_id, "Wine"), line.quantity) for line in body.lines]
    try:
        reservation = await place_b2b_order(current_user, producer, lines)
    except ProducerOrderError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return reservation_to_dict(reservation)
