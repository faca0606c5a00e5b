"""Checkout endpoints: zone preview and reservation confirmation."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from crowdvine.models.user import Address
from crowdvine.schemas.orders import CheckoutRequest, ZonePreviewRequest
from crowdvine.services.auth import RequireAuth, RequireMember
from crowdvine.services.cart import cart_id_from_request, find_cart
from crowdvine.services.checkout import (
    CheckoutError,
    confirm_checkout,
    merge_address,
    preview_zones,
    reservation_to_dict,
)
from crowdvine.services.checkout_validation import validate_cart_lines

from ._common import optional_object_id

logger = logging.getLogger(__name__)

router = APIRouter()


def _address(data) -> Address | None:
    return Address(**data.model_dump()) if data is not None else None


@router.get("/validate")
async def validate_cart(request: Request) -> dict[str, Any]:
    """Six-bottle rule check for the current cart."""
    cart = await find_cart(cart_id_from_request(request))
    result = await validate_cart_lines(cart.lines if cart else [])
    return result.to_dict()


@router.post("/zones")
async def zones_preview(
    body: ZonePreviewRequest, request: Request, current_user: RequireAuth
) -> dict[str, Any]:
    """Pickup and delivery zones, and pallets on that route, for the cart."""
    cart = await find_cart(cart_id_from_request(request))
    address = merge_address(current_user.address, _address(body.address))
    zones = await preview_zones(cart, address)
    return zones.to_dict()


@router.get("/zones")
async def zones_for_saved_address(request: Request, current_user: RequireAuth) -> dict[str, Any]:
    cart = await find_cart(cart_id_from_request(request))
    zones = await preview_zones(cart, current_user.address)
    return zones.to_dict()


@router.post("/confirm", status_code=201)
async def confirm(
    body: CheckoutRequest, request: Request, current_user: RequireMember
) -> dict[str, Any]:
    """Place a reservation for the cart on a pallet serving the address."""
    cart = await find_cart(cart_id_from_request(request))
    try:
        reservation = await confirm_checkout(
            current_user,
            cart,
            address=_address(body.address),
            pallet_id=optional_object_id(body.pallet_id, "Pallet"),
            discount_code=body.discount_code,
        )
    except CheckoutError as e:
        logger.info("Checkout refused for %s: %s", current_user.id, e.code)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": e.code, "message": e.message, **e.details},
        )
    return reservation_to_dict(reservation)
