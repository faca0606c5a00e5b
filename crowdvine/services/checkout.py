"""Checkout: turn a cart into a pallet reservation."""

import logging
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import In

from crowdvine.models.base import utcnow
from crowdvine.models.cart import Cart
from crowdvine.models.pallet import Pallet
from crowdvine.models.reservation import Reservation, ReservationItem, ReservationStatus
from crowdvine.models.user import Address, User
from crowdvine.models.wine import Wine
from crowdvine.services.analytics import posthog_service
from crowdvine.services.cart import clear_cart
from crowdvine.services.checkout_validation import validate_cart_lines
from crowdvine.services.discounts import DiscountError, apply_discount_code, discount_amount, find_usable_code
from crowdvine.services.email import get_email_service
from crowdvine.services.membership import apply_buffs, award_for_reservation
from crowdvine.services.pallets import check_pallet_completion
from crowdvine.services.payments import PaymentError
from crowdvine.services.pricing import format_price_cents
from crowdvine.services.shipping import cart_shipping_cost
from crowdvine.services.zones import ZoneMatchResult, determine_zones

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """A checkout that cannot go ahead; code is machine readable."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


def merge_address(saved: Address | None, given: Address | None) -> Address | None:
    """Fields given at checkout override the saved address."""
    if given is None:
        return saved
    if saved is None:
        return given
    return saved.model_copy(update=given.model_dump(exclude_none=True))


def select_pallet(
    zones: ZoneMatchResult, bottles: int, pallet_id: PydanticObjectId | None = None
) -> dict[str, Any] | None:
    """Pallet on the route with room for the order.

    An explicit pallet must be on the route and have room; otherwise the
    first pallet (oldest) with room is chosen.
    """
    candidates = zones.pallets
    if pallet_id is not None:
        chosen = next((p for p in candidates if p["id"] == str(pallet_id)), None)
        if chosen is None:
            raise CheckoutError("pallet_not_on_route", "The chosen pallet does not serve your address")
        if chosen["remaining_bottles"] < bottles:
            raise CheckoutError(
                "pallet_full",
                f"Pallet {chosen['name']} has room for {chosen['remaining_bottles']} bottles",
                {"remaining_bottles": chosen["remaining_bottles"]},
            )
        return chosen
    return next((p for p in candidates if p["remaining_bottles"] >= bottles), None)


async def preview_zones(cart: Cart | None, address: Address | None) -> ZoneMatchResult:
    wine_ids = [line.wine_id for line in cart.lines] if cart else []
    return await determine_zones(wine_ids, address)


async def confirm_checkout(
    user: User,
    cart: Cart | None,
    address: Address | None = None,
    pallet_id: PydanticObjectId | None = None,
    discount_code: str | None = None,
) -> Reservation:
    """Place a reservation for the cart.

    Raises:
        CheckoutError: Empty cart, six-bottle rule, address, pallet or code problems.
    """
    if cart is None or not cart.lines:
        raise CheckoutError("empty_cart", "Your cart is empty")

    validation = await validate_cart_lines(cart.lines)
    if not validation.is_valid:
        raise CheckoutError(
            "six_bottle_rule", "; ".join(validation.errors), {"validation": validation.to_dict()}
        )

    delivery_address = merge_address(user.address, address)
    if delivery_address is None or not delivery_address.is_complete:
        raise CheckoutError("address_incomplete", "Postcode, city and country are required")
    delivery_address.country_code = delivery_address.country_code.upper()
    user.address = delivery_address
    user.updated_at = utcnow()
    await user.save()

    wines = {
        w.id: w
        for w in await Wine.find(In(Wine.id, [line.wine_id for line in cart.lines])).to_list()
    }
    missing = [str(line.wine_id) for line in cart.lines if line.wine_id not in wines]
    if missing:
        raise CheckoutError("unknown_wine", "Some wines are no longer available", {"wine_ids": missing})

    bottles = cart.total_quantity
    zones = await determine_zones([line.wine_id for line in cart.lines], delivery_address)
    chosen = select_pallet(zones, bottles, pallet_id)
    pallet = await Pallet.get(PydanticObjectId(chosen["id"])) if chosen else None
    if pallet is None:
        logger.info("No pallet with room for %d bottles; reservation left unassigned", bottles)

    discount = None
    if discount_code:
        try:
            discount = await find_usable_code(discount_code)
        except DiscountError as e:
            raise CheckoutError("invalid_discount_code", str(e)) from e

    items = [
        ReservationItem(
            wine_id=line.wine_id,
            quantity=line.quantity,
            unit_price_cents=wines[line.wine_id].base_price_cents,
            price_band=line.band,
        )
        for line in cart.lines
    ]
    subtotal = sum(i.unit_price_cents * i.quantity for i in items)
    shipping = cart_shipping_cost(cart.lines, pallet)

    reservation = Reservation(
        user_id=user.id,
        cart_id=cart.cart_id,
        address=delivery_address,
        pallet_id=pallet.id if pallet else None,
        pickup_zone_id=zones.pickup_zone_id,
        delivery_zone_id=zones.delivery_zone_id,
        items=items,
        status=ReservationStatus.PLACED,
        subtotal_cents=subtotal,
        shipping_cents=shipping.total_shipping_cost_cents if shipping else 0,
    )
    await reservation.insert()

    discount_cents = 0
    if discount is not None:
        try:
            applied = await apply_discount_code(discount.code, user.id, subtotal)
        except DiscountError as e:
            await reservation.delete()
            raise CheckoutError("invalid_discount_code", str(e)) from e
        reservation.discount_code = applied.code
        discount_cents += applied.discount_cents

    buff_percentage, _ = await apply_buffs(user.id, reservation.id)
    if buff_percentage > 0:
        reservation.buff_percentage = buff_percentage
        discount_cents += discount_amount(subtotal, buff_percentage)

    reservation.discount_cents = min(discount_cents, subtotal)
    reservation.total_cents = subtotal - reservation.discount_cents + reservation.shipping_cents
    await reservation.save()

    await clear_cart(cart)
    logger.info(
        "Reservation %s placed by %s: %d bottles, %d öre, pallet %s",
        reservation.id,
        user.id,
        bottles,
        reservation.total_cents,
        reservation.pallet_id,
    )
    posthog_service.capture(
        distinct_id=str(user.id),
        event="reservation_placed",
        properties={
            "reservation_id": str(reservation.id),
            "bottles": bottles,
            "total_cents": reservation.total_cents,
        },
    )

    await award_for_reservation(reservation)

    if not await get_email_service().send_reservation_confirmation(
        user.email,
        str(reservation.id),
        items=[
            {
                "title": wines[i.wine_id].title,
                "quantity": i.quantity,
                "line_total": format_price_cents(i.unit_price_cents * i.quantity),
            }
            for i in items
        ],
        total=format_price_cents(reservation.total_cents),
        pallet_name=pallet.name if pallet else None,
    ):
        logger.error("Reservation confirmation email failed for %s", reservation.id)

    if pallet is not None:
        try:
            await check_pallet_completion(pallet.id)
        except PaymentError as e:
            # The pallet stays open and is completed by a later check
            logger.error("Pallet %s could not be completed: %s", pallet.id, e)
        # Completion may have moved this reservation to pending_payment
        reservation = await Reservation.get(reservation.id)

    return reservation


def reservation_to_dict(reservation: Reservation) -> dict[str, Any]:
    return {
        "id": str(reservation.id),
        "status": reservation.status.value,
        "payment_status": reservation.payment_status.value,
        "pallet_id": str(reservation.pallet_id) if reservation.pallet_id else None,
        "pickup_zone_id": str(reservation.pickup_zone_id) if reservation.pickup_zone_id else None,
        "delivery_zone_id": str(reservation.delivery_zone_id) if reservation.delivery_zone_id else None,
        "address": reservation.address.model_dump() if reservation.address else None,
        "items": [
            {
                "item_id": i.item_id,
                "wine_id": str(i.wine_id),
                "quantity": i.quantity,
                "unit_price_cents": i.unit_price_cents,
                "price_band": i.price_band,
                "producer_decision_status": i.producer_decision_status.value,
                "producer_approved_quantity": i.producer_approved_quantity,
            }
            for i in reservation.items
        ],
        "bottle_count": reservation.bottle_count,
        "subtotal_cents": reservation.subtotal_cents,
        "discount_cents": reservation.discount_cents,
        "shipping_cents": reservation.shipping_cents,
        "total_cents": reservation.total_cents,
        "total": format_price_cents(reservation.total_cents),
        "discount_code": reservation.discount_code,
        "buff_percentage": reservation.buff_percentage,
        "payment_link": reservation.payment_link,
        "payment_deadline": reservation.payment_deadline,
        "created_at": reservation.created_at,
        "updated_at": reservation.updated_at,
    }

