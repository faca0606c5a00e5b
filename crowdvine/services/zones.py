"""Zone matching: which pickup and delivery zones serve a cart and address."""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from beanie import PydanticObjectId
from beanie.operators import In, Or

from crowdvine.models.pallet import Pallet, PalletStatus
from crowdvine.models.producer import Producer
from crowdvine.models.user import Address
from crowdvine.models.wine import Wine
from crowdvine.models.zone import PalletZone, ZoneType
from crowdvine.services.geo import (
    SWEDISH_CITIES,
    Coordinates,
    haversine_km,
    resolve_address_coordinates,
)
from crowdvine.services.pallets import fill_data, pallet_bottle_counts

logger = logging.getLogger(__name__)

SEED_RADIUS_KM = 50.0


class ZoneInUseError(Exception):
    """Raised when deleting a zone that pallets or producers still reference."""


@dataclass
class ZoneMatchResult:
    pickup_zone_id: PydanticObjectId | None = None
    pickup_zone_name: str | None = None
    delivery_zone_id: PydanticObjectId | None = None
    delivery_zone_name: str | None = None
    available_delivery_zones: list[dict[str, Any]] = field(default_factory=list)
    pallets: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pickup_zone_id": str(self.pickup_zone_id) if self.pickup_zone_id else None,
            "pickup_zone_name": self.pickup_zone_name,
            "delivery_zone_id": str(self.delivery_zone_id) if self.delivery_zone_id else None,
            "delivery_zone_name": self.delivery_zone_name,
            "available_delivery_zones": self.available_delivery_zones,
            "pallets": self.pallets,
        }


def _has_geometry(zone: PalletZone) -> bool:
    return (
        zone.center_lat is not None
        and zone.center_lon is not None
        and zone.radius_km is not None
    )


def zone_distance_km(zone: PalletZone, lat: float, lon: float) -> float:
    return haversine_km(lat, lon, zone.center_lat, zone.center_lon)


def zone_contains(zone: PalletZone, lat: float, lon: float) -> bool:
    if not _has_geometry(zone):
        return False
    return zone_distance_km(zone, lat, lon) <= zone.radius_km


def match_zones(zones: Iterable[PalletZone], lat: float, lon: float) -> list[PalletZone]:
    """Zones containing the point, nearest centre first."""
    containing = [z for z in zones if zone_contains(z, lat, lon)]
    return sorted(containing, key=lambda z: zone_distance_km(z, lat, lon))


async def delivery_zone_candidates(country_code: str | None) -> list[PalletZone]:
    """Delivery zones for a country, plus zones without a country."""
    query = PalletZone.find(PalletZone.zone_type == ZoneType.DELIVERY)
    if country_code:
        query = query.find(
            Or(PalletZone.country_code == country_code.upper(), PalletZone.country_code == None)  # noqa: E711
        )
    return await query.to_list()


async def pickup_zones_for_producer(producer: Producer) -> list[PalletZone]:
    if producer.lat is None or producer.lon is None:
        return []
    zones = await PalletZone.find(PalletZone.zone_type == ZoneType.PICKUP).to_list()
    return match_zones(zones, producer.lat, producer.lon)


async def _first_producer(wine_ids: list[PydanticObjectId]) -> Producer | None:
    if not wine_ids:
        return None
    wines = {w.id: w for w in await Wine.find(In(Wine.id, wine_ids)).to_list()}
    for wine_id in wine_ids:
        wine = wines.get(wine_id)
        if wine is not None and wine.producer_id is not None:
            return await Producer.get(wine.producer_id)
    return None


async def route_pallets(
    pickup_zone_id: PydanticObjectId, delivery_zone_id: PydanticObjectId
) -> list[dict[str, Any]]:
    """Open pallets between two zones with their fill levels."""
    pallets = await Pallet.find(
        Pallet.pickup_zone_id == pickup_zone_id,
        Pallet.delivery_zone_id == delivery_zone_id,
        Pallet.status == PalletStatus.OPEN,
    ).sort(+Pallet.created_at).to_list()
    counts = await pallet_bottle_counts([p.id for p in pallets])
    return [
        {"id": str(p.id), "name": p.name, **fill_data(p, counts.get(p.id, 0))}
        for p in pallets
    ]


async def determine_zones(
    wine_ids: list[PydanticObjectId], address: Address | None
) -> ZoneMatchResult:
    """Resolve the pickup zone for the cart and the delivery zones for the address."""
    result = ZoneMatchResult()

    producer = await _first_producer(wine_ids)
    if producer is not None and producer.pickup_zone_id is not None:
        pickup = await PalletZone.get(producer.pickup_zone_id)
        if pickup is not None:
            result.pickup_zone_id = pickup.id
            result.pickup_zone_name = pickup.name

    if address is not None and address.is_complete:
        if address.lat is not None and address.lon is not None:
            coords = Coordinates(address.lat, address.lon)
        else:
            coords = await resolve_address_coordinates(
                address.city, address.country_code, address.postcode, address.street
            )
        if coords is None:
            logger.info("No coordinates for %s, %s", address.city, address.country_code)
        else:
            zones = await delivery_zone_candidates(address.country_code)
            matches = match_zones(zones, coords.lat, coords.lon)
            result.available_delivery_zones = [
                {
                    "id": str(z.id),
                    "name": z.name,
                    "distance_km": round(zone_distance_km(z, coords.lat, coords.lon), 1),
                    "radius_km": z.radius_km,
                }
                for z in matches
            ]
            if matches:
                result.delivery_zone_id = matches[0].id
                result.delivery_zone_name = matches[0].name

    if result.pickup_zone_id and result.delivery_zone_id:
        result.pallets = await route_pallets(result.pickup_zone_id, result.delivery_zone_id)
    return result


async def delete_zone(zone: PalletZone) -> None:
    """Delete a zone that nothing references.

    Raises:
        ZoneInUseError: A pallet or producer still uses the zone.
    """
    pallets = await Pallet.find(
        Or(Pallet.pickup_zone_id == zone.id, Pallet.delivery_zone_id == zone.id)
    ).count()
    producers = await Producer.find(Producer.pickup_zone_id == zone.id).count()
    if pallets or producers:
        raise ZoneInUseError(
            f"Zone {zone.name} is used by {pallets} pallet(s) and {producers} producer(s)"
        )
    await zone.delete()
    logger.info("Deleted zone %s (%s)", zone.name, zone.id)


async def seed_swedish_zones() -> list[PalletZone]:
    """Create a delivery zone around each known Swedish city. Returns new zones."""
    created = []
    seen: set[tuple[float, float]] = set()
    for city, coords in SWEDISH_CITIES.items():
        # Several spellings share one location
        if (coords.lat, coords.lon) in seen:
            continue
        seen.add((coords.lat, coords.lon))

        name = f"{city.title()} Delivery"
        existing = await PalletZone.find_one(
            PalletZone.name == name, PalletZone.zone_type == ZoneType.DELIVERY
        )
        if existing is not None:
            continue
        zone = PalletZone(
            name=name,
            zone_type=ZoneType.DELIVERY,
            center_lat=coords.lat,
            center_lon=coords.lon,
            radius_km=SEED_RADIUS_KM,
            country_code="SE",
        )
        await zone.insert()
        created.append(zone)
    logger.info("Seeded %d delivery zones", len(created))
    return created


def zone_to_dict(zone: PalletZone) -> dict[str, Any]:
    return {
        "id": str(zone.id),
        "name": zone.name,
        "zone_type": zone.zone_type.value,
        "center_lat": zone.center_lat,
        "center_lon": zone.center_lon,
        "radius_km": zone.radius_km,
        "country_code": zone.country_code,
        "description": zone.description,
    }
