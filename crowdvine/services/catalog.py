"""Catalog operations: producers, producer groups, wines and the storefront."""

import logging
import re
from typing import Any

from beanie import Document, PydanticObjectId
from beanie.operators import In, RegEx, Text

from crowdvine.models.base import utcnow
from crowdvine.models.pallet import Pallet
from crowdvine.models.producer import Producer, ProducerGroup
from crowdvine.models.reservation import ACTIVE_RESERVATION_STATUSES, Reservation
from crowdvine.models.wine import Wine, WineColor
from crowdvine.services.geo import resolve_address_coordinates
from crowdvine.services.pricing import (
    apply_bulk_margin,
    breakdown_for_wine,
    calculate_percentages,
    cost_in_sek,
    format_price_cents,
    price_wine,
)

logger = logging.getLogger(__name__)

# Changing any of these recomputes base_price_cents
PRICING_FIELDS = frozenset(
    {"cost_amount", "exchange_rate", "alcohol_tax_cents", "margin_percentage", "price_includes_vat"}
)

HANDLE_MAX_LENGTH = 50


class CatalogError(Exception):
    """Raised for catalog changes that conflict with existing data."""


def generate_handle(name: str, vintage: str | int | None = None) -> str:
    """URL handle: "Château Margaux", 2015 -> "chteau-margaux-2015"."""
    base = re.sub(r"[^a-z0-9 ]", "", name.lower())
    base = re.sub(r"\s+", "-", base.strip())[:HANDLE_MAX_LENGTH]
    return f"{base}-{vintage}" if vintage else base


async def unique_handle(model: type[Document], base: str) -> str:
    """First of base, base-2, base-3, ... not taken by another document."""
    handle = base
    suffix = 2
    while await model.find_one({"handle": handle}) is not None:
        handle = f"{base}-{suffix}"
        suffix += 1
    return handle


# Producers


async def _locate_producer(producer: Producer) -> None:
    """Fill in coordinates and the pickup zone when they are missing."""
    from crowdvine.services.zones import pickup_zones_for_producer

    if producer.lat is None or producer.lon is None:
        coords = await resolve_address_coordinates(
            producer.address_city,
            producer.country_code,
            producer.address_postcode,
            producer.address_street,
        )
        if coords is not None:
            producer.lat, producer.lon = coords.lat, coords.lon
        elif producer.address_city:
            logger.info("Could not geocode producer %s (%s)", producer.name, producer.address_city)

    if producer.pickup_zone_id is None:
        zones = await pickup_zones_for_producer(producer)
        if zones:
            producer.pickup_zone_id = zones[0].id


async def create_producer(data: dict[str, Any]) -> Producer:
    handle = data.pop("handle", None) or generate_handle(data["name"])
    if await Producer.find_one(Producer.handle == handle):
        raise CatalogError(f"Producer handle '{handle}' is already taken")

    producer = Producer(handle=handle, **data)
    if producer.country_code:
        producer.country_code = producer.country_code.upper()
    await _locate_producer(producer)
    await producer.insert()
    logger.info("Created producer %s (%s)", producer.name, producer.id)
    return producer


async def update_producer(producer: Producer, changes: dict[str, Any]) -> Producer:
    new_handle = changes.get("handle")
    if new_handle and new_handle != producer.handle:
        if await Producer.find_one(Producer.handle == new_handle):
            raise CatalogError(f"Producer handle '{new_handle}' is already taken")

    address_changed = any(
        k in changes for k in ("address_street", "address_postcode", "address_city", "country_code")
    )
    for field, value in changes.items():
        setattr(producer, field, value)
    if producer.country_code:
        producer.country_code = producer.country_code.upper()

    # A new address invalidates coordinates unless new ones were given
    if address_changed and not ("lat" in changes and "lon" in changes):
        producer.lat = producer.lon = None
    await _locate_producer(producer)

    producer.updated_at = utcnow()
    await producer.save()
    return producer


async def delete_producer(producer: Producer) -> None:
    wines = await Wine.find(Wine.producer_id == producer.id).count()
    if wines:
        raise CatalogError(f"Producer {producer.name} still has {wines} wine(s)")
    await ProducerGroup.find(ProducerGroup.producer_ids == producer.id).update(
        {"$pull": {"producer_ids": producer.id}}
    )
    await producer.delete()
    logger.info("Deleted producer %s (%s)", producer.name, producer.id)


# Producer groups


async def _check_producers_exist(producer_ids: list[PydanticObjectId]) -> None:
    found = await Producer.find(In(Producer.id, producer_ids)).count()
    if found != len(set(producer_ids)):
        raise CatalogError("One or more producers do not exist")


async def create_group(name: str, description: str | None, producer_ids: list[PydanticObjectId]) -> ProducerGroup:
    await _check_producers_exist(producer_ids)
    group = ProducerGroup(name=name, description=description, producer_ids=list(dict.fromkeys(producer_ids)))
    await group.insert()
    return group


async def update_group(group: ProducerGroup, changes: dict[str, Any]) -> ProducerGroup:
    if "producer_ids" in changes:
        await _check_producers_exist(changes["producer_ids"])
        changes["producer_ids"] = list(dict.fromkeys(changes["producer_ids"]))
    for field, value in changes.items():
        setattr(group, field, value)
    await group.save()
    return group


# Wines


async def create_wine(data: dict[str, Any]) -> Wine:
    handle = data.pop("handle", None) or generate_handle(data["wine_name"], data.get("vintage"))
    if await Wine.find_one(Wine.handle == handle):
        raise CatalogError(f"Wine handle '{handle}' is already taken")
    if data.get("producer_id") and await Producer.get(data["producer_id"]) is None:
        raise CatalogError("Producer does not exist")

    wine = Wine(handle=handle, **data)
    wine.base_price_cents = price_wine(wine)
    await wine.insert()
    logger.info("Created wine %s (%s) at %d öre", wine.title, wine.id, wine.base_price_cents)
    return wine


async def update_wine(wine: Wine, changes: dict[str, Any]) -> Wine:
    new_handle = changes.get("handle")
    if new_handle and new_handle != wine.handle:
        if await Wine.find_one(Wine.handle == new_handle):
            raise CatalogError(f"Wine handle '{new_handle}' is already taken")
    if changes.get("producer_id") and await Producer.get(changes["producer_id"]) is None:
        raise CatalogError("Producer does not exist")

    for field, value in changes.items():
        setattr(wine, field, value)
    if PRICING_FIELDS & changes.keys():
        wine.base_price_cents = price_wine(wine)

    wine.updated_at = utcnow()
    await wine.save()
    return wine


async def delete_wine(wine: Wine) -> None:
    reserved = await Reservation.find(
        {"items.wine_id": wine.id},
        In(Reservation.status, list(ACTIVE_RESERVATION_STATUSES)),
    ).count()
    if reserved:
        raise CatalogError(f"{wine.title} is in {reserved} active reservation(s)")
    await wine.delete()
    logger.info("Deleted wine %s (%s)", wine.title, wine.id)


async def bulk_update_margin(
    margin_percentage: float, wine_ids: list[PydanticObjectId] | None = None
) -> list[Wine]:
    query = Wine.find(In(Wine.id, wine_ids)) if wine_ids else Wine.find_all()
    wines = apply_bulk_margin(await query.to_list(), margin_percentage)
    now = utcnow()
    for wine in wines:
        wine.updated_at = now
        await wine.save()
    logger.info("Set margin %.1f%% on %d wines", margin_percentage, len(wines))
    return wines


def wine_cost_view(wine: Wine) -> dict[str, Any]:
    """Admin view of a wine's cost side next to its price."""
    cost_sek = cost_in_sek(wine.cost_amount, wine.exchange_rate, wine.alcohol_tax_cents)
    return {
        "id": str(wine.id),
        "handle": wine.handle,
        "title": wine.title,
        "producer_id": str(wine.producer_id) if wine.producer_id else None,
        "cost_currency": wine.cost_currency,
        "cost_amount": wine.cost_amount,
        "exchange_rate": wine.exchange_rate,
        "alcohol_tax_cents": wine.alcohol_tax_cents,
        "cost_sek": round(cost_sek, 2),
        "margin_percentage": wine.margin_percentage,
        "b2b_margin_percentage": wine.b2b_margin_percentage,
        "base_price_cents": wine.base_price_cents,
        "price": format_price_cents(wine.base_price_cents),
        "is_live": wine.is_live,
    }


async def wine_pallet_stock(wine: Wine) -> list[dict[str, Any]]:
    """Bottles of a wine reserved on each pallet."""
    reservations = await Reservation.find(
        {"items.wine_id": wine.id},
        In(Reservation.status, list(ACTIVE_RESERVATION_STATUSES)),
    ).to_list()

    per_pallet: dict[PydanticObjectId | None, int] = {}
    for reservation in reservations:
        qty = sum(i.quantity for i in reservation.items if i.wine_id == wine.id)
        per_pallet[reservation.pallet_id] = per_pallet.get(reservation.pallet_id, 0) + qty

    ids = [pid for pid in per_pallet if pid is not None]
    pallets = {p.id: p for p in await Pallet.find(In(Pallet.id, ids)).to_list()}
    return [
        {
            "pallet_id": str(pid) if pid else None,
            "pallet_name": pallets[pid].name if pid in pallets else None,
            "quantity": qty,
        }
        for pid, qty in per_pallet.items()
    ]


# Storefront


def wine_card(wine: Wine, producer: Producer | None = None) -> dict[str, Any]:
    return {
        "id": str(wine.id),
        "handle": wine.handle,
        "title": wine.title,
        "wine_name": wine.wine_name,
        "vintage": wine.vintage,
        "grape_varieties": wine.grape_varieties,
        "color": wine.color.value if wine.color else None,
        "label_image_path": wine.label_image_path,
        "price_cents": wine.base_price_cents,
        "price": format_price_cents(wine.base_price_cents),
        "producer": (
            {"id": str(producer.id), "name": producer.name, "handle": producer.handle}
            if producer
            else None
        ),
    }


async def _with_producers(wines: list[Wine]) -> list[dict[str, Any]]:
    ids = list({w.producer_id for w in wines if w.producer_id})
    producers = {p.id: p for p in await Producer.find(In(Producer.id, ids)).to_list()}
    return [wine_card(w, producers.get(w.producer_id)) for w in wines]


async def list_live_wines(
    producer_id: PydanticObjectId | None = None,
    color: WineColor | None = None,
    grape: str | None = None,
    q: str | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[dict[str, Any]]:
    query = Wine.find(Wine.is_live == True)  # noqa: E712
    if producer_id is not None:
        query = query.find(Wine.producer_id == producer_id)
    if color is not None:
        query = query.find(Wine.color == color)
    if grape:
        query = query.find(RegEx(Wine.grape_varieties, re.escape(grape), options="i"))
    if q:
        query = query.find(Text(q))
    wines = await query.sort(+Wine.wine_name).skip(skip).limit(limit).to_list()
    return await _with_producers(wines)


async def wine_detail(handle: str, member_discount_percent: float = 0) -> dict[str, Any] | None:
    wine = await Wine.find_one(Wine.handle == handle, Wine.is_live == True)  # noqa: E712
    if wine is None:
        return None
    producer = await Producer.get(wine.producer_id) if wine.producer_id else None
    breakdown = breakdown_for_wine(wine, member_discount_percent)
    return {
        **wine_card(wine, producer),
        "description": wine.description,
        "description_html": wine.description_html,
        "price_breakdown": breakdown.to_dict(),
        "price_percentages": calculate_percentages(breakdown),
    }


async def list_active_producers() -> list[Producer]:
    return await Producer.find(Producer.is_active == True).sort(+Producer.name).to_list()  # noqa: E712


async def producer_page(handle: str) -> dict[str, Any] | None:
    producer = await Producer.find_one(Producer.handle == handle, Producer.is_active == True)  # noqa: E712
    if producer is None:
        return None
    wines = await Wine.find(Wine.producer_id == producer.id, Wine.is_live == True).to_list()  # noqa: E712
    groups = await ProducerGroup.find(ProducerGroup.producer_ids == producer.id).to_list()
    return {
        "id": str(producer.id),
        "name": producer.name,
        "handle": producer.handle,
        "description": producer.description,
        "region": producer.region,
        "country_code": producer.country_code,
        "logo_url": producer.logo_url,
        "groups": [{"id": str(g.id), "name": g.name} for g in groups],
        "wines": [wine_card(w, producer) for w in wines],
    }


async def group_products(group: ProducerGroup) -> list[dict[str, Any]]:
    """Live wines from every producer in a group, which count together at checkout."""
    wines = await Wine.find(
        In(Wine.producer_id, group.producer_ids), Wine.is_live == True  # noqa: E712
    ).sort(+Wine.wine_name).to_list()
    return await _with_producers(wines)
