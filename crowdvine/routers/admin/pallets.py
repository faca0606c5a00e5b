"""Admin pallet management."""

import logging
from typing import Any

from fastapi import HTTPException, status

from crowdvine.models.base import utcnow
from crowdvine.models.pallet import Pallet
from crowdvine.models.reservation import Reservation
from crowdvine.models.zone import PalletZone
from crowdvine.schemas.logistics import MoveReservation, PalletCreate, PalletStatusUpdate, PalletUpdate
from crowdvine.services.auth import RequireAdmin
from crowdvine.services.checkout import reservation_to_dict
from crowdvine.services.pallets import (
    PalletError,
    active_reservations,
    check_pallet_completion,
    move_reservation,
    pallet_bottle_count,
    pallet_bottle_counts,
    pallet_metrics,
    pallet_status,
    pallet_to_dict,
    reset_reservations,
    set_pallet_status,
)
from crowdvine.services.payments import PaymentError, regenerate_payment_link

from .._common import get_or_404, optional_object_id

logger = logging.getLogger(__name__)


async def _check_zone(zone_id: str | None) -> None:
    oid = optional_object_id(zone_id, "Zone")
    if oid is not None and await PalletZone.get(oid) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Zone {zone_id} does not exist",
        )


async def list_pallets(admin: RequireAdmin) -> list[dict[str, Any]]:
    pallets = await Pallet.find_all().sort(-Pallet.created_at).to_list()
    counts = await pallet_bottle_counts([p.id for p in pallets])
    return [pallet_to_dict(p, counts.get(p.id, 0)) for p in pallets]


async def create_pallet(body: PalletCreate, admin: RequireAdmin) -> dict[str, Any]:
    await _check_zone(body.pickup_zone_id)
    await _check_zone(body.delivery_zone_id)
    pallet = Pallet(
        **body.model_dump(exclude={"pickup_zone_id", "delivery_zone_id"}),
        pickup_zone_id=optional_object_id(body.pickup_zone_id, "Zone"),
        delivery_zone_id=optional_object_id(body.delivery_zone_id, "Zone"),
    )
    await pallet.insert()
    logger.info("Admin %s created pallet %s", admin.id, pallet.id)
    return pallet_to_dict(pallet, 0)


async def get_pallet(pallet_id: str, admin: RequireAdmin) -> dict[str, Any]:
    pallet = await get_or_404(Pallet, pallet_id, "Pallet")
    return {
        **pallet_to_dict(pallet, await pallet_bottle_count(pallet.id)),
        "metrics": await pallet_metrics(pallet),
        "payment": await pallet_status(pallet.id),
    }


async def update_pallet(pallet_id: str, body: PalletUpdate, admin: RequireAdmin) -> dict[str, Any]:
    """Update a pallet; new capacity or rules may complete it."""
    pallet = await get_or_404(Pallet, pallet_id, "Pallet")
    changes = body.model_dump(exclude_unset=True)
    for field in ("pickup_zone_id", "delivery_zone_id"):
        if field in changes:
            await _check_zone(changes[field])
            changes[field] = optional_object_id(changes[field], "Zone")
    if "completion_rules" in changes:
        changes["completion_rules"] = body.completion_rules
    for field, value in changes.items():
        setattr(pallet, field, value)
    pallet.updated_at = utcnow()
    await pallet.save()

    try:
        await check_pallet_completion(pallet.id)
    except PaymentError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    pallet = await Pallet.get(pallet.id)
    return pallet_to_dict(pallet, await pallet_bottle_count(pallet.id))


async def delete_pallet(pallet_id: str, admin: RequireAdmin) -> None:
    pallet = await get_or_404(Pallet, pallet_id, "Pallet")
    reservations = await active_reservations(pallet.id)
    if reservations:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Pallet has {len(reservations)} active reservation(s); reset them first",
        )
    await pallet.delete()
    logger.info("Admin %s deleted pallet %s", admin.id, pallet_id)


async def list_pallet_reservations(pallet_id: str, admin: RequireAdmin) -> list[dict[str, Any]]:
    pallet = await get_or_404(Pallet, pallet_id, "Pallet")
    reservations = await Reservation.find(Reservation.pallet_id == pallet.id).sort(
        -Reservation.created_at
    ).to_list()
    return [reservation_to_dict(r) for r in reservations]


async def reset_pallet_reservations(pallet_id: str, admin: RequireAdmin) -> dict[str, Any]:
    """Detach every reservation from the pallet."""
    pallet = await get_or_404(Pallet, pallet_id, "Pallet")
    return {"detached": await reset_reservations(pallet)}


async def move_pallet_reservation(body: MoveReservation, admin: RequireAdmin) -> dict[str, Any]:
    reservation = await get_or_404(Reservation, body.reservation_id, "Reservation")
    target = await get_or_404(Pallet, body.target_pallet_id, "Pallet")
    try:
        reservation = await move_reservation(reservation, target)
    except PalletError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    try:
        await check_pallet_completion(target.id)
    except PaymentError as e:
        logger.error("Pallet %s could not be completed: %s", target.id, e)
    return reservation_to_dict(reservation)


async def run_completion_check(pallet_id: str, admin: RequireAdmin) -> dict[str, Any]:
    """Check the pallet now; completing it sends payment requests."""
    pallet = await get_or_404(Pallet, pallet_id, "Pallet")
    try:
        completed = await check_pallet_completion(pallet.id)
    except PaymentError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return {"completed": completed, **await pallet_status(pallet.id)}


async def update_pallet_status(
    pallet_id: str, body: PalletStatusUpdate, admin: RequireAdmin
) -> dict[str, Any]:
    pallet = await get_or_404(Pallet, pallet_id, "Pallet")
    pallet = await set_pallet_status(pallet, body.status)
    return pallet_to_dict(pallet, await pallet_bottle_count(pallet.id))


async def regenerate_reservation_payment_link(
    reservation_id: str, admin: RequireAdmin
) -> dict[str, Any]:
    reservation = await get_or_404(Reservation, reservation_id, "Reservation")
    try:
        url = await regenerate_payment_link(reservation)
    except PaymentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"reservation_id": str(reservation.id), "payment_link": url}
