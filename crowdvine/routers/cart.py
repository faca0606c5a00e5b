"""Cart endpoints; the cart is identified by the cart cookie."""

from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response, status

from crowdvine.schemas.orders import CartAdd, CartLineUpdate
from crowdvine.services.auth import CurrentUser
from crowdvine.services.cart import (
    CartError,
    add_item,
    cart_id_from_request,
    cart_view,
    clear_cart,
    find_cart,
    get_or_create_cart,
    remove_line,
    set_cart_cookie,
    update_line,
)

router = APIRouter()


def _not_found(e: CartError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("")
async def get_cart(request: Request) -> dict[str, Any]:
    """Current cart; no cookie or an unknown id reads as an empty cart."""
    return await cart_view(await find_cart(cart_id_from_request(request)))


@router.post("/items")
async def add_to_cart(
    item: CartAdd,
    request: Request,
    response: Response,
    current_user: CurrentUser,
) -> dict[str, Any]:
    cart = await get_or_create_cart(
        cart_id_from_request(request), current_user.id if current_user else None
    )
    try:
        cart = await add_item(cart, item.wine_id, item.quantity)
    except CartError as e:
        raise _not_found(e)
    set_cart_cookie(response, cart.cart_id)
    return await cart_view(cart)


@router.put("/items/{line_id}")
async def update_cart_line(line_id: str, update: CartLineUpdate, request: Request) -> dict[str, Any]:
    """Set a line's quantity; zero removes it."""
    cart = await find_cart(cart_id_from_request(request))
    if cart is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cart not found")
    try:
        cart = await update_line(cart, line_id, update.quantity)
    except CartError as e:
        raise _not_found(e)
    return await cart_view(cart)


@router.delete("/items/{line_id}")
async def remove_cart_line(line_id: str, request: Request) -> dict[str, Any]:
    cart = await find_cart(cart_id_from_request(request))
    if cart is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cart not found")
    try:
        cart = await remove_line(cart, line_id)
    except CartError as e:
        raise _not_found(e)
    return await cart_view(cart)


@router.delete("")
async def empty_cart(request: Request) -> dict[str, Any]:
    cart = await find_cart(cart_id_from_request(request))
    if cart is not None:
        cart = await clear_cart(cart)
    return await cart_view(cart)
