"""Cookie-keyed shopping cart."""

import logging
import uuid
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import In
from bson.errors import InvalidId
from fastapi import Request, Response

from crowdvine.models.base import utcnow
from crowdvine.models.cart import Cart, CartLine
from crowdvine.models.wine import Wine
from crowdvine.services.pricing import format_price_cents

logger = logging.getLogger(__name__)

CART_COOKIE = "cv_cart_id"
CART_COOKIE_MAX_AGE = 60 * 60 * 24 * 90

# Storefront variant ids look like "<wine id>-default"
VARIANT_SUFFIX = "-default"


class CartError(Exception):
    """Raised for cart changes referring to unknown wines or lines."""


def cart_id_from_request(request: Request) -> str | None:
    return request.cookies.get(CART_COOKIE)


def set_cart_cookie(response: Response, cart_id: str) -> None:
    response.set_cookie(
        CART_COOKIE,
        cart_id,
        max_age=CART_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
        path="/",
    )


def new_cart_id() -> str:
    return str(uuid.uuid4())


def parse_wine_id(value: str) -> PydanticObjectId:
    """Wine id from a storefront variant id.

    Raises:
        CartError: The value is not a wine id.
    """
    if value.endswith(VARIANT_SUFFIX):
        value = value[: -len(VARIANT_SUFFIX)]
    try:
        return PydanticObjectId(value)
    except InvalidId as e:
        raise CartError(f"Invalid wine id: {value}") from e


async def find_cart(cart_id: str | None) -> Cart | None:
    if not cart_id:
        return None
    return await Cart.find_one(Cart.cart_id == cart_id)


async def get_or_create_cart(cart_id: str | None, user_id: PydanticObjectId | None = None) -> Cart:
    cart = await find_cart(cart_id)
    if cart is None:
        cart = Cart(cart_id=cart_id or new_cart_id(), user_id=user_id)
        await cart.insert()
        logger.debug("Created cart %s", cart.cart_id)
    elif user_id is not None and cart.user_id is None:
        cart.user_id = user_id
        await cart.save()
    return cart


async def cart_view(cart: Cart | None) -> dict[str, Any]:
    """Cart lines with titles and prices; a missing cart reads as empty."""
    if cart is None or not cart.lines:
        return {
            "cart_id": cart.cart_id if cart else None,
            "lines": [],
            "total_quantity": 0,
            "total_cents": 0,
            "total": format_price_cents(0),
        }

    wines = {
        w.id: w
        for w in await Wine.find(In(Wine.id, [line.wine_id for line in cart.lines])).to_list()
    }
    lines = []
    total_cents = 0
    for line in cart.lines:
        wine = wines.get(line.wine_id)
        unit = wine.base_price_cents if wine else 0
        line_total = unit * line.quantity
        total_cents += line_total
        lines.append(
            {
                "line_id": line.line_id,
                "wine_id": str(line.wine_id),
                "title": wine.title if wine else "Unavailable wine",
                "handle": wine.handle if wine else None,
                "producer_id": str(wine.producer_id) if wine and wine.producer_id else None,
                "quantity": line.quantity,
                "band": line.band,
                "unit_price_cents": unit,
                "line_total_cents": line_total,
                "unit_price": format_price_cents(unit),
                "line_total": format_price_cents(line_total),
            }
        )
    return {
        "cart_id": cart.cart_id,
        "lines": lines,
        "total_quantity": cart.total_quantity,
        "total_cents": total_cents,
        "total": format_price_cents(total_cents),
    }


async def add_item(cart: Cart, wine_id: str, quantity: int = 1) -> Cart:
    """Add bottles of a wine, merging into an existing line.

    Raises:
        CartError: Unknown wine or a non-positive quantity.
    """
    if quantity <= 0:
        raise CartError("Quantity must be positive")
    oid = parse_wine_id(wine_id)
    wine = await Wine.get(oid)
    if wine is None or not wine.is_live:
        raise CartError(f"Wine {wine_id} not found")

    for line in cart.lines:
        if line.wine_id == oid:
            line.quantity += quantity
            break
    else:
        cart.lines.append(CartLine(wine_id=oid, quantity=quantity))

    cart.updated_at = utcnow()
    await cart.save()
    return cart


async def update_line(cart: Cart, line_id: str, quantity: int) -> Cart:
    """Set a line's quantity; zero or less removes the line."""
    if quantity <= 0:
        return await remove_line(cart, line_id)
    for line in cart.lines:
        if line.line_id == line_id:
            line.quantity = quantity
            break
    else:
        raise CartError(f"Cart line {line_id} not found")
    cart.updated_at = utcnow()
    await cart.save()
    return cart


async def remove_line(cart: Cart, line_id: str) -> Cart:
    remaining = [line for line in cart.lines if line.line_id != line_id]
    if len(remaining) == len(cart.lines):
        raise CartError(f"Cart line {line_id} not found")
    cart.lines = remaining
    cart.updated_at = utcnow()
    await cart.save()
    return cart


async def clear_cart(cart: Cart) -> Cart:
    cart.lines = []
    cart.updated_at = utcnow()
    await cart.save()
    return cart
