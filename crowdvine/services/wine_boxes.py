"""Curated wine boxes and their prices."""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import In

from crowdvine.models.base import utcnow
from crowdvine.models.wine import Wine
from crowdvine.models.wine_box import WineBox, WineBoxItem
from crowdvine.services.catalog import CatalogError, generate_handle
from crowdvine.services.pricing import cost_in_sek

logger = logging.getLogger(__name__)

CACHE_SECONDS = 5 * 60


@dataclass
class WineBoxPrice:
    wine_box_id: str
    name: str
    handle: str
    description: str | None
    image_url: str | None
    total_cost: float
    total_wine_price: float
    margin_amount: float
    final_price: float
    discount_amount: float
    discount_percentage: float
    bottle_count: int
    wines: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# box id -> (computed at, price)
_cache: dict[str, tuple[float, WineBoxPrice]] = {}


def invalidate_cache(box_id: PydanticObjectId | None = None) -> None:
    if box_id is None:
        _cache.clear()
    else:
        _cache.pop(str(box_id), None)


def price_box(box: WineBox, wines: dict[PydanticObjectId, Wine]) -> WineBoxPrice:
    """Box price: wine cost plus the box margin, against buying each wine alone.

    The box margin is a markup on cost (cost * (1 + margin)).
    """
    total_cost = 0.0
    individual = 0.0
    bottles = 0
    lines = []
    for item in box.items:
        wine = wines.get(item.wine_id)
        if wine is None:
            logger.warning("Wine box %s refers to missing wine %s", box.id, item.wine_id)
            continue
        unit_cost = cost_in_sek(wine.cost_amount, wine.exchange_rate or 1.0, wine.alcohol_tax_cents)
        total_cost += unit_cost * item.quantity
        individual += wine.base_price_cents / 100 * item.quantity
        bottles += item.quantity
        lines.append(
            {
                "wine_id": str(wine.id),
                "wine_name": wine.wine_name,
                "vintage": wine.vintage,
                "price": round(unit_cost, 2),
                "quantity": item.quantity,
            }
        )

    margin_amount = total_cost * box.margin_percentage / 100
    final_price = total_cost + margin_amount
    discount = individual - final_price
    return WineBoxPrice(
        wine_box_id=str(box.id),
        name=box.name,
        handle=box.handle,
        description=box.description,
        image_url=box.image_url,
        total_cost=round(total_cost, 2),
        total_wine_price=round(individual, 2),
        margin_amount=round(margin_amount, 2),
        final_price=round(final_price, 2),
        discount_amount=round(discount, 2),
        discount_percentage=round(discount / individual * 100, 2) if individual else 0.0,
        bottle_count=bottles,
        wines=lines,
    )


async def calculate_wine_box_price(box: WineBox) -> WineBoxPrice:
    """Price for a box, cached for five minutes."""
    key = str(box.id)
    cached = _cache.get(key)
    if cached is not None and time.monotonic() - cached[0] < CACHE_SECONDS:
        return cached[1]

    wines = {
        w.id: w
        for w in await Wine.find(In(Wine.id, [i.wine_id for i in box.items])).to_list()
    }
    price = price_box(box, wines)
    _cache[key] = (time.monotonic(), price)
    return price


async def active_box_prices() -> list[WineBoxPrice]:
    boxes = await WineBox.find(WineBox.is_active == True).sort(+WineBox.name).to_list()  # noqa: E712
    return [await calculate_wine_box_price(box) for box in boxes]


async def _check_items(items: list[WineBoxItem]) -> None:
    ids = {i.wine_id for i in items}
    if await Wine.find(In(Wine.id, list(ids))).count() != len(ids):
        raise CatalogError("One or more wines do not exist")


async def create_box(data: dict[str, Any]) -> WineBox:
    handle = data.pop("handle", None) or generate_handle(data["name"])
    if await WineBox.find_one(WineBox.handle == handle):
        raise CatalogError(f"Wine box handle '{handle}' is already taken")
    items = [WineBoxItem(**i) for i in data.pop("items", [])]
    await _check_items(items)
    box = WineBox(handle=handle, items=items, **data)
    await box.insert()
    logger.info("Created wine box %s (%s)", box.name, box.id)
    return box


async def update_box(box: WineBox, changes: dict[str, Any]) -> WineBox:
    new_handle = changes.get("handle")
    if new_handle and new_handle != box.handle and await WineBox.find_one(WineBox.handle == new_handle):
        raise CatalogError(f"Wine box handle '{new_handle}' is already taken")
    for field_name, value in changes.items():
        setattr(box, field_name, value)
    box.updated_at = utcnow()
    await box.save()
    invalidate_cache(box.id)
    return box


async def replace_items(box: WineBox, items: list[WineBoxItem]) -> WineBox:
    await _check_items(items)
    box.items = items
    box.updated_at = utcnow()
    await box.save()
    invalidate_cache(box.id)
    return box


async def delete_box(box: WineBox) -> None:
    await box.delete()
    invalidate_cache(box.id)
