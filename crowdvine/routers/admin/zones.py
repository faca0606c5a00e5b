"""Admin zone management."""

import logging
from typing import Any

from fastapi import HTTPException, status

from crowdvine.models.zone import PalletZone, ZoneType
from crowdvine.schemas.logistics import ZoneCreate, ZoneUpdate
from crowdvine.services.auth import RequireAdmin
from crowdvine.services.zones import ZoneInUseError, delete_zone, seed_swedish_zones, zone_to_dict

from .._common import get_or_404

logger = logging.getLogger(__name__)


async def list_zones(admin: RequireAdmin, zone_type: ZoneType | None = None) -> list[dict[str, Any]]:
    query = PalletZone.find(PalletZone.zone_type == zone_type) if zone_type else PalletZone.find_all()
    return [zone_to_dict(z) for z in await query.sort(+PalletZone.name).to_list()]


async def create_zone(body: ZoneCreate, admin: RequireAdmin) -> dict[str, Any]:
    zone = PalletZone(**body.model_dump())
    if zone.country_code:
        zone.country_code = zone.country_code.upper()
    await zone.insert()
    logger.info("Admin %s created zone %s", admin.id, zone.id)
    return zone_to_dict(zone)


async def get_zone(zone_id: str, admin: RequireAdmin) -> dict[str, Any]:
    return zone_to_dict(await get_or_404(PalletZone, zone_id, "Zone"))


async def update_zone(zone_id: str, body: ZoneUpdate, admin: RequireAdmin) -> dict[str, Any]:
    zone = await get_or_404(PalletZone, zone_id, "Zone")
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(zone, field, value)
    if zone.country_code:
        zone.country_code = zone.country_code.upper()
    await zone.save()
    return zone_to_dict(zone)


async def remove_zone(zone_id: str, admin: RequireAdmin) -> None:
    zone = await get_or_404(PalletZone, zone_id, "Zone")
    try:
        await delete_zone(zone)
    except ZoneInUseError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


async def seed_zones(admin: RequireAdmin) -> dict[str, Any]:
    """Create delivery zones around the known Swedish cities (idempotent)."""
    created = await seed_swedish_zones()
    return {"created": len(created), "zones": [zone_to_dict(z) for z in created]}
