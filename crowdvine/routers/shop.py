"""Storefront endpoints: wines, producers, groups and wine boxes."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status

from crowdvine.models.producer import ProducerGroup
from crowdvine.models.wine import WineColor
from crowdvine.models.wine_box import WineBox
from crowdvine.schemas.catalog import ProducerResponse
from crowdvine.services.auth import CurrentUser
from crowdvine.services.catalog import (
    group_products,
    list_active_producers,
    list_live_wines,
    producer_page,
    wine_detail,
)
from crowdvine.services.membership import get_membership, get_voucher_discount_percent
from crowdvine.services.wine_boxes import active_box_prices, calculate_wine_box_price

from ._common import get_or_404, optional_object_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/wines")
async def list_wines(
    producer_id: str | None = None,
    color: WineColor | None = None,
    grape: str | None = Query(None, max_length=100),
    q: str | None = Query(None, max_length=200),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> list[dict[str, Any]]:
    """Live wines, optionally filtered by producer, color, grape or text."""
    return await list_live_wines(
        producer_id=optional_object_id(producer_id, "Producer"),
        color=color,
        grape=grape,
        q=q,
        skip=skip,
        limit=limit,
    )


@router.get("/wines/{handle}")
async def get_wine(handle: str, current_user: CurrentUser) -> dict[str, Any]:
    """Wine by handle with its price breakdown.

    Signed-in members see the breakdown with their level's voucher discount.
    """
    discount = 0
    if current_user is not None:
        membership = await get_membership(current_user.id)
        if membership is not None:
            discount = get_voucher_discount_percent(membership.level)

    wine = await wine_detail(handle, member_discount_percent=discount)
    if wine is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Wine '{handle}' not found",
        )
    return wine


@router.get("/producers", response_model=list[ProducerResponse])
async def list_producers() -> list[ProducerResponse]:
    producers = await list_active_producers()
    return [ProducerResponse.model_validate(p) for p in producers]


@router.get("/producers/{handle}")
async def get_producer_page(handle: str) -> dict[str, Any]:
    page = await producer_page(handle)
    if page is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Producer '{handle}' not found",
        )
    return page


@router.get("/groups/{group_id}/wines")
async def get_group_wines(group_id: str) -> dict[str, Any]:
    """Live wines of every producer in a group; they share the six-bottle rule."""
    group = await get_or_404(ProducerGroup, group_id, "Producer group")
    return {
        "id": str(group.id),
        "name": group.name,
        "description": group.description,
        "wines": await group_products(group),
    }


@router.get("/wine-boxes")
async def list_wine_boxes() -> list[dict[str, Any]]:
    return [price.to_dict() for price in await active_box_prices()]


@router.get("/wine-boxes/{handle}")
async def get_wine_box(handle: str) -> dict[str, Any]:
    box = await WineBox.find_one(WineBox.handle == handle, WineBox.is_active == True)  # noqa: E712
    if box is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Wine box '{handle}' not found",
        )
    return (await calculate_wine_box_price(box)).to_dict()
