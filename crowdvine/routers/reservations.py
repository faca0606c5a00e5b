"""Customer reservation endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from crowdvine.models.base import utcnow
from crowdvine.models.pallet import Pallet
from crowdvine.models.reservation import Reservation, ReservationStatus
from crowdvine.models.user import User
from crowdvine.services.auth import RequireAuth
from crowdvine.services.checkout import reservation_to_dict
from crowdvine.services.pallets import fill_data, pallet_bottle_counts
from crowdvine.services.payments import payment_summary

from ._common import get_or_404

logger = logging.getLogger(__name__)

router = APIRouter()


async def _own_reservation(reservation_id: str, user: User) -> Reservation:
    reservation = await get_or_404(Reservation, reservation_id, "Reservation")
    if reservation.user_id != user.id and not user.is_admin:
        # Someone else's reservation reads as missing
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Reservation with ID {reservation_id} not found",
        )
    return reservation


@router.get("")
async def list_my_reservations(
    current_user: RequireAuth,
    status_filter: ReservationStatus | None = None,
) -> list[dict[str, Any]]:
    query = Reservation.find(Reservation.user_id == current_user.id)
    if status_filter is not None:
        query = query.find(Reservation.status == status_filter)
    reservations = await query.sort(-Reservation.created_at).to_list()
    return [reservation_to_dict(r) for r in reservations]


@router.get("/pallets")
async def my_pallet_summary(current_user: RequireAuth) -> list[dict[str, Any]]:
    """My bottles per pallet, with each pallet's overall fill."""
    reservations = await Reservation.find(
        Reservation.user_id == current_user.id,
        Reservation.pallet_id != None,  # noqa: E711
        Reservation.status != ReservationStatus.CANCELLED,
    ).to_list()

    mine: dict = {}
    for reservation in reservations:
        mine[reservation.pallet_id] = mine.get(reservation.pallet_id, 0) + reservation.bottle_count
    if not mine:
        return []

    pallets = await Pallet.find({"_id": {"$in": list(mine)}}).to_list()
    counts = await pallet_bottle_counts([p.id for p in pallets])
    return [
        {
            "pallet_id": str(p.id),
            "name": p.name,
            "status": p.status.value,
            "my_bottles": mine[p.id],
            **fill_data(p, counts.get(p.id, 0)),
        }
        for p in pallets
    ]


@router.get("/{reservation_id}")
async def get_reservation(reservation_id: str, current_user: RequireAuth) -> dict[str, Any]:
    return reservation_to_dict(await _own_reservation(reservation_id, current_user))


@router.get("/{reservation_id}/status")
async def get_reservation_status(reservation_id: str, current_user: RequireAuth) -> dict[str, Any]:
    """Payment state of a reservation, polled by the payment page."""
    reservation = await _own_reservation(reservation_id, current_user)
    return {"reservation_id": str(reservation.id), **payment_summary(reservation)}


@router.post("/{reservation_id}/cancel")
async def cancel_reservation(reservation_id: str, current_user: RequireAuth) -> dict[str, Any]:
    """Cancel a reservation that is still only placed."""
    reservation = await _own_reservation(reservation_id, current_user)
    if reservation.status != ReservationStatus.PLACED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only placed reservations can be cancelled (status is {reservation.status.value})",
        )
    reservation.status = ReservationStatus.CANCELLED
    reservation.updated_at = utcnow()
    await reservation.save()
    logger.info("Reservation %s cancelled by %s", reservation.id, current_user.id)
    return reservation_to_dict(reservation)
