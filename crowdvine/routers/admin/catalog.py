"""Admin catalog management: producers, groups and wines."""

import logging
from typing import Any

from fastapi import HTTPException, Query, status

from crowdvine.models.producer import Producer, ProducerGroup
from crowdvine.models.wine import Wine
from crowdvine.schemas.catalog import (
    BulkMarginUpdate,
    ProducerCreate,
    ProducerGroupCreate,
    ProducerGroupResponse,
    ProducerGroupUpdate,
    ProducerResponse,
    ProducerUpdate,
    WineCreate,
    WineResponse,
    WineUpdate,
)
from crowdvine.services.auth import RequireAdmin
from crowdvine.services.catalog import (
    CatalogError,
    bulk_update_margin,
    create_group,
    create_producer,
    create_wine,
    delete_producer,
    delete_wine,
    update_group,
    update_producer,
    update_wine,
    wine_cost_view,
    wine_pallet_stock,
)
from crowdvine.services.pricing import PricingError

from .._common import get_or_404, optional_object_id

logger = logging.getLogger(__name__)


def _catalog_error(e: Exception) -> HTTPException:
    detail = str(e)
    code = status.HTTP_409_CONFLICT if "already taken" in detail else status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=detail)


def _with_object_id(data: dict[str, Any], field: str, label: str) -> dict[str, Any]:
    if field in data:
        data[field] = optional_object_id(data[field], label)
    return data


# Producers


async def list_producers(admin: RequireAdmin) -> list[ProducerResponse]:
    producers = await Producer.find_all().sort(+Producer.name).to_list()
    return [ProducerResponse.model_validate(p) for p in producers]


async def create_producer_endpoint(body: ProducerCreate, admin: RequireAdmin) -> ProducerResponse:
    """Create a producer, geocoding its address when no coordinates are given."""
    data = _with_object_id(body.model_dump(), "pickup_zone_id", "Zone")
    try:
        producer = await create_producer(data)
    except CatalogError as e:
        raise _catalog_error(e)
    return ProducerResponse.model_validate(producer)


async def get_producer(producer_id: str, admin: RequireAdmin) -> ProducerResponse:
    return ProducerResponse.model_validate(await get_or_404(Producer, producer_id, "Producer"))


async def update_producer_endpoint(
    producer_id: str, body: ProducerUpdate, admin: RequireAdmin
) -> ProducerResponse:
    producer = await get_or_404(Producer, producer_id, "Producer")
    changes = _with_object_id(body.model_dump(exclude_unset=True), "pickup_zone_id", "Zone")
    try:
        producer = await update_producer(producer, changes)
    except CatalogError as e:
        raise _catalog_error(e)
    return ProducerResponse.model_validate(producer)


async def delete_producer_endpoint(producer_id: str, admin: RequireAdmin) -> None:
    producer = await get_or_404(Producer, producer_id, "Producer")
    try:
        await delete_producer(producer)
    except CatalogError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


# Producer groups


async def list_groups(admin: RequireAdmin) -> list[ProducerGroupResponse]:
    groups = await ProducerGroup.find_all().sort(+ProducerGroup.name).to_list()
    return [ProducerGroupResponse.model_validate(g) for g in groups]


async def create_group_endpoint(body: ProducerGroupCreate, admin: RequireAdmin) -> ProducerGroupResponse:
    ids = [optional_object_id(pid, "Producer") for pid in body.producer_ids]
    try:
        group = await create_group(body.name, body.description, ids)
    except CatalogError as e:
        raise _catalog_error(e)
    return ProducerGroupResponse.model_validate(group)


async def update_group_endpoint(
    group_id: str, body: ProducerGroupUpdate, admin: RequireAdmin
) -> ProducerGroupResponse:
    group = await get_or_404(ProducerGroup, group_id, "Producer group")
    changes = body.model_dump(exclude_unset=True)
    if changes.get("producer_ids") is not None:
        changes["producer_ids"] = [optional_object_id(pid, "Producer") for pid in changes["producer_ids"]]
    try:
        group = await update_group(group, changes)
    except CatalogError as e:
        raise _catalog_error(e)
    return ProducerGroupResponse.model_validate(group)


async def delete_group(group_id: str, admin: RequireAdmin) -> None:
    group = await get_or_404(ProducerGroup, group_id, "Producer group")
    await group.delete()


# Wines


async def list_wines(
    admin: RequireAdmin,
    producer_id: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(200, ge=1, le=1000),
) -> list[WineResponse]:
    oid = optional_object_id(producer_id, "Producer")
    query = Wine.find(Wine.producer_id == oid) if oid else Wine.find_all()
    wines = await query.sort(+Wine.wine_name).skip(skip).limit(limit).to_list()
    return [WineResponse.model_validate(w) for w in wines]


async def list_wine_costs(admin: RequireAdmin) -> list[dict[str, Any]]:
    """Every wine with its cost side next to its price."""
    return [wine_cost_view(w) for w in await Wine.find_all().sort(+Wine.wine_name).to_list()]


async def create_wine_endpoint(body: WineCreate, admin: RequireAdmin) -> WineResponse:
    data = _with_object_id(body.model_dump(), "producer_id", "Producer")
    try:
        wine = await create_wine(data)
    except (CatalogError, PricingError) as e:
        raise _catalog_error(e)
    return WineResponse.model_validate(wine)


async def get_wine(wine_id: str, admin: RequireAdmin) -> WineResponse:
    return WineResponse.model_validate(await get_or_404(Wine, wine_id, "Wine"))


async def update_wine_endpoint(wine_id: str, body: WineUpdate, admin: RequireAdmin) -> WineResponse:
    """Update a wine; changed pricing inputs recompute its price."""
    wine = await get_or_404(Wine, wine_id, "Wine")
    changes = _with_object_id(body.model_dump(exclude_unset=True), "producer_id", "Producer")
    try:
        wine = await update_wine(wine, changes)
    except (CatalogError, PricingError) as e:
        raise _catalog_error(e)
    return WineResponse.model_validate(wine)


async def delete_wine_endpoint(wine_id: str, admin: RequireAdmin) -> None:
    wine = await get_or_404(Wine, wine_id, "Wine")
    try:
        await delete_wine(wine)
    except CatalogError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


async def get_wine_pallet_stock(wine_id: str, admin: RequireAdmin) -> list[dict[str, Any]]:
    return await wine_pallet_stock(await get_or_404(Wine, wine_id, "Wine"))


async def set_bulk_margin(body: BulkMarginUpdate, admin: RequireAdmin) -> dict[str, Any]:
    """Apply one margin to many wines (all when no ids are given) and reprice them."""
    ids = [optional_object_id(wid, "Wine") for wid in body.wine_ids] if body.wine_ids else None
    try:
        wines = await bulk_update_margin(body.margin_percentage, ids)
    except PricingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"updated": len(wines), "margin_percentage": body.margin_percentage}
