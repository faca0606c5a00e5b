"""Admin management of curated wine boxes."""

import logging
from typing import Any

from fastapi import HTTPException, status

from crowdvine.models.wine_box import WineBox, WineBoxItem
from crowdvine.schemas.wine_box import WineBoxCreate, WineBoxItemIn, WineBoxItemsUpdate, WineBoxUpdate
from crowdvine.services.auth import RequireAdmin
from crowdvine.services.catalog import CatalogError
from crowdvine.services.wine_boxes import (
    calculate_wine_box_price,
    create_box,
    delete_box,
    replace_items,
    update_box,
)

from .._common import get_or_404, optional_object_id

logger = logging.getLogger(__name__)


def _items(items: list[WineBoxItemIn]) -> list[WineBoxItem]:
    return [
        WineBoxItem(wine_id=optional_object_id(i.wine_id, "Wine"), quantity=i.quantity)
        for i in items
    ]


async def _box_with_price(box: WineBox) -> dict[str, Any]:
    price = await calculate_wine_box_price(box)
    return {**price.to_dict(), "is_active": box.is_active, "margin_percentage": box.margin_percentage}


async def list_boxes(admin: RequireAdmin) -> list[dict[str, Any]]:
    boxes = await WineBox.find_all().sort(+WineBox.name).to_list()
    return [await _box_with_price(box) for box in boxes]


async def create_wine_box(body: WineBoxCreate, admin: RequireAdmin) -> dict[str, Any]:
    data = body.model_dump(exclude={"items"})
    data["items"] = [i.model_dump() for i in _items(body.items)]
    try:
        box = await create_box(data)
    except CatalogError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await _box_with_price(box)


async def get_wine_box(box_id: str, admin: RequireAdmin) -> dict[str, Any]:
    return await _box_with_price(await get_or_404(WineBox, box_id, "Wine box"))


async def update_wine_box(box_id: str, body: WineBoxUpdate, admin: RequireAdmin) -> dict[str, Any]:
    box = await get_or_404(WineBox, box_id, "Wine box")
    try:
        box = await update_box(box, body.model_dump(exclude_unset=True))
    except CatalogError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return await _box_with_price(box)


async def set_wine_box_items(box_id: str, body: WineBoxItemsUpdate, admin: RequireAdmin) -> dict[str, Any]:
    box = await get_or_404(WineBox, box_id, "Wine box")
    try:
        box = await replace_items(box, _items(body.items))
    except CatalogError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await _box_with_price(box)


async def delete_wine_box(box_id: str, admin: RequireAdmin) -> None:
    await delete_box(await get_or_404(WineBox, box_id, "Wine box"))
