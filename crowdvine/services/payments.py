"""Stripe checkout sessions for pallet payments and webhook handling."""

import asyncio
import json
import logging
from datetime import timedelta
from typing import Any

import stripe
from beanie import PydanticObjectId
from beanie.operators import In
from bson.errors import InvalidId

from crowdvine.config import settings
from crowdvine.models.base import as_utc, utcnow
from crowdvine.models.pallet import Pallet, PalletStatus
from crowdvine.models.reservation import (
    ACTIVE_RESERVATION_STATUSES,
    PaymentStatus,
    Reservation,
    ReservationStatus,
)
from crowdvine.models.user import User
from crowdvine.services.analytics import posthog_service
from crowdvine.services.email import get_email_service
from crowdvine.services.pricing import format_price_cents

logger = logging.getLogger(__name__)
payments_logger = logging.getLogger("crowdvine.payments")

# Stripe refuses checkout sessions that live longer than a day
MAX_SESSION_LIFETIME = timedelta(hours=24)

ALLOWED_SHIPPING_COUNTRIES = ["SE", "NO", "DK", "FI", "DE", "FR", "GB"]


class PaymentError(Exception):
    """Raised when a payment link cannot be created."""


class WebhookError(Exception):
    """Raised for webhook requests that fail verification."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


def _stripe_client() -> stripe.StripeClient:
    if not settings.stripe_secret_key:
        raise PaymentError("Stripe is not configured (STRIPE_SECRET_KEY missing)")
    return stripe.StripeClient(settings.stripe_secret_key)


async def create_checkout_session(params: dict[str, Any]) -> Any:
    """Create a Stripe Checkout Session off the event loop."""
    client = _stripe_client()
    return await asyncio.to_thread(client.checkout.sessions.create, params=params)


def build_session_params(
    reservation: Reservation, email: str, pallet_name: str | None
) -> dict[str, Any]:
    name = pallet_name or "Pallet"
    bottles = reservation.bottle_count
    frontend = settings.frontend_url.rstrip("/")
    expires_at = utcnow() + MAX_SESSION_LIFETIME
    return {
        "mode": "payment",
        "customer_email": email,
        "line_items": [
            {
                "price_data": {
                    "currency": settings.payment_currency,
                    "product_data": {
                        "name": f"Wine Pallet Order - {name}",
                        "description": f"{bottles} bottles from {name}",
                    },
                    "unit_amount": reservation.total_cents,
                },
                "quantity": 1,
            }
        ],
        "success_url": f"{frontend}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{frontend}/payment/cancelled?reservation_id={reservation.id}",
        "expires_at": int(expires_at.timestamp()),
        "metadata": {
            "reservation_id": str(reservation.id),
            "pallet_id": str(reservation.pallet_id) if reservation.pallet_id else "",
            "customer_email": email,
            "bottle_count": str(bottles),
            "total_amount": str(reservation.total_cents),
        },
        "payment_intent_data": {"metadata": {"reservation_id": str(reservation.id)}},
        "shipping_address_collection": {"allowed_countries": ALLOWED_SHIPPING_COUNTRIES},
        "billing_address_collection": "required",
        "payment_method_types": ["card"],
    }


async def create_payment_link(reservation: Reservation) -> str:
    """Payment URL for a reservation awaiting payment.

    An existing link is reused; otherwise a new checkout session is created
    and its URL and id are stored on the reservation.

    Raises:
        PaymentError: The reservation is not awaiting payment or Stripe failed.
    """
    if reservation.status != ReservationStatus.PENDING_PAYMENT:
        raise PaymentError(
            f"Reservation {reservation.id} is not awaiting payment (status: {reservation.status.value})"
        )
    if reservation.payment_link and reservation.payment_session_id:
        return reservation.payment_link

    user = await User.get(reservation.user_id)
    if user is None:
        raise PaymentError(f"User for reservation {reservation.id} not found")
    pallet = await Pallet.get(reservation.pallet_id) if reservation.pallet_id else None

    params = build_session_params(reservation, user.email, pallet.name if pallet else None)
    try:
        session = await create_checkout_session(params)
    except stripe.StripeError as e:
        payments_logger.error("Stripe session creation failed for reservation %s: %s", reservation.id, e)
        raise PaymentError(f"Could not create payment link: {e}") from e

    reservation.payment_link = session.url
    reservation.payment_session_id = session.id
    if reservation.payment_deadline is None:
        reservation.payment_deadline = utcnow() + timedelta(days=settings.payment_deadline_days)
    reservation.updated_at = utcnow()
    await reservation.save()
    payments_logger.info("Payment link created for reservation %s (session %s)", reservation.id, session.id)
    return session.url


async def regenerate_payment_link(reservation: Reservation) -> str:
    reservation.payment_link = None
    reservation.payment_session_id = None
    return await create_payment_link(reservation)


async def send_payment_requests(pallet: Pallet, reservations: list[Reservation]) -> int:
    """Create a payment link for each reservation and email it.

    Link creation failures propagate; a rejected email is only logged.
    """
    email_service = get_email_service()
    sent = 0
    for reservation in reservations:
        url = await create_payment_link(reservation)
        user = await User.get(reservation.user_id)
        if user is None:
            continue
        deadline = reservation.payment_deadline or pallet.payment_deadline
        ok = await email_service.send_payment_request(
            user.email,
            pallet_name=pallet.name,
            payment_url=url,
            amount=format_price_cents(reservation.total_cents),
            deadline=deadline.strftime("%Y-%m-%d") if deadline else "",
        )
        if ok:
            sent += 1
        else:
            logger.error("Payment request email failed for reservation %s", reservation.id)
    logger.info("Pallet %s: sent %d/%d payment requests", pallet.id, sent, len(reservations))
    return sent


def payment_summary(reservation: Reservation) -> dict[str, Any]:
    deadline = as_utc(reservation.payment_deadline)
    return {
        "payment_status": reservation.payment_status.value,
        "payment_intent_id": reservation.payment_intent_id,
        "payment_link": reservation.payment_link,
        "payment_deadline": deadline,
        "reservation_status": reservation.status.value,
        "has_payment_link": bool(reservation.payment_link),
        "is_expired": bool(deadline and deadline < utcnow()),
    }


# Webhook


def verify_webhook(payload: bytes, signature: str | None) -> dict[str, Any]:
    """Verify the Stripe signature and return the decoded event.

    Raises:
        WebhookError: 400 for a missing or bad signature, 500 when no secret is set.
    """
    if not signature:
        raise WebhookError("Missing signature", 400)
    secret = settings.stripe_webhook_secret
    if not secret:
        payments_logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not configured")
        raise WebhookError("Webhook secret not configured", 500)

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        payments_logger.warning("Webhook payload is not UTF-8: %s", e)
        raise WebhookError("Invalid payload", 400) from e

    try:
        stripe.WebhookSignature.verify_header(body, signature, secret)
    except stripe.SignatureVerificationError as e:
        payments_logger.warning("Webhook signature verification failed: %s", e)
        raise WebhookError("Invalid signature", 400) from e

    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise WebhookError("Invalid payload", 400) from e


async def _reservation_by_id(value: str | None) -> Reservation | None:
    if not value:
        return None
    try:
        return await Reservation.get(PydanticObjectId(value))
    except InvalidId:
        payments_logger.debug("Webhook metadata carries invalid reservation id %r", value)
        return None


async def _update_pallet_after_payment(pallet_id: PydanticObjectId) -> bool:
    """Move an auto-mode pallet to awaiting_pickup once everyone has paid."""
    pallet = await Pallet.get(pallet_id)
    if pallet is None or pallet.status_mode != "auto":
        return False
    if pallet.status in (PalletStatus.DELIVERED, PalletStatus.CANCELLED):
        return False

    reservations = await Reservation.find(
        Reservation.pallet_id == pallet_id,
        In(Reservation.status, list(ACTIVE_RESERVATION_STATUSES)),
    ).to_list()
    all_paid = bool(reservations) and all(
        r.payment_status == PaymentStatus.PAID or r.status == ReservationStatus.CONFIRMED
        for r in reservations
    )
    if not all_paid:
        return False

    pallet.status = PalletStatus.AWAITING_PICKUP
    pallet.updated_at = utcnow()
    await pallet.save()
    payments_logger.info("Pallet %s fully paid, now awaiting pickup", pallet_id)
    return True


async def _confirm(reservation: Reservation, payment_intent_id: str | None) -> None:
    reservation.status = ReservationStatus.CONFIRMED
    reservation.payment_status = PaymentStatus.PAID
    if payment_intent_id:
        reservation.payment_intent_id = payment_intent_id
    reservation.updated_at = utcnow()
    await reservation.save()
    payments_logger.info("Reservation %s marked as paid", reservation.id)

    posthog_service.capture(
        distinct_id=str(reservation.user_id),
        event="reservation_paid",
        properties={"reservation_id": str(reservation.id), "amount_cents": reservation.total_cents},
    )

    user = await User.get(reservation.user_id)
    if user is not None:
        await get_email_service().send_payment_received(
            user.email, str(reservation.id), format_price_cents(reservation.total_cents)
        )


async def handle_checkout_completed(session: dict[str, Any]) -> None:
    reservation = await _reservation_by_id((session.get("metadata") or {}).get("reservation_id"))
    if reservation is None:
        payments_logger.info("Checkout session %s has no reservation", session.get("id"))
        return
    await _confirm(reservation, session.get("payment_intent"))
    if reservation.pallet_id:
        await _update_pallet_after_payment(reservation.pallet_id)


async def handle_payment_intent_succeeded(intent: dict[str, Any]) -> None:
    if not (intent.get("metadata") or {}).get("reservation_id"):
        return
    reservation = await Reservation.find_one(Reservation.payment_intent_id == intent["id"])
    if reservation is None:
        reservation = await _reservation_by_id(intent["metadata"]["reservation_id"])
    if reservation is None or reservation.payment_status == PaymentStatus.PAID:
        return
    await _confirm(reservation, intent["id"])
    if reservation.pallet_id:
        await _update_pallet_after_payment(reservation.pallet_id)


async def handle_payment_failed(intent: dict[str, Any]) -> None:
    if not (intent.get("metadata") or {}).get("reservation_id"):
        return
    reservation = await Reservation.find_one(Reservation.payment_intent_id == intent["id"])
    if reservation is None:
        reservation = await _reservation_by_id(intent["metadata"]["reservation_id"])
    if reservation is None:
        return
    reservation.payment_status = PaymentStatus.FAILED
    reservation.payment_intent_id = intent["id"]
    reservation.updated_at = utcnow()
    await reservation.save()
    payments_logger.warning("Payment failed for reservation %s", reservation.id)


async def handle_session_expired(session: dict[str, Any]) -> None:
    reservation = await _reservation_by_id((session.get("metadata") or {}).get("reservation_id"))
    if reservation is None:
        return
    reservation.payment_status = PaymentStatus.EXPIRED
    reservation.updated_at = utcnow()
    await reservation.save()
    payments_logger.info("Checkout session expired for reservation %s", reservation.id)


EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "payment_intent.succeeded": handle_payment_intent_succeeded,
    "payment_intent.payment_failed": handle_payment_failed,
    "checkout.session.expired": handle_session_expired,
}


async def process_webhook_event(event: dict[str, Any]) -> bool:
    """Dispatch a verified event. Returns False for event types we ignore."""
    event_type = event.get("type", "")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        payments_logger.info("Unhandled webhook event type: %s", event_type)
        return False
    payments_logger.info("Processing webhook event %s (%s)", event.get("id"), event_type)
    await handler(event["data"]["object"])
    return True
