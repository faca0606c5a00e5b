"""API tests for the cart, checkout and payment flow against MongoDB."""

import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe
from beanie import PydanticObjectId

from crowdvine.models import (
    Membership,
    MembershipLevel,
    Pallet,
    PalletStatus,
    PaymentStatus,
    ProgressionBuff,
    Reservation,
    ReservationItem,
    ReservationStatus,
)

from tests.conftest import STOCKHOLM_ADDRESS, api_client, create_route, create_user

WEBHOOK_SECRET = "whsec_test_secret"


def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


async def fill_cart(client, wine, quantity=6):
    response = await client.post("/api/cart/items", json={"wine_id": str(wine.id), "quantity": quantity})
    assert response.status_code == 200
    return response.json()


class TestCart:
    """Cart endpoints keyed by the cart cookie."""

    async def test_empty_without_cookie(self, unauthenticated_client):
        response = await unauthenticated_client.get("/api/cart")
        assert response.status_code == 200
        assert response.json()["lines"] == []

    async def test_add_sets_cookie_and_merges_lines(self, unauthenticated_client):
        route = await create_route()

        first = await fill_cart(unauthenticated_client, route.wine, 2)
        assert unauthenticated_client.cookies.get("cv_cart_id") == first["cart_id"]

        await unauthenticated_client.post(
            "/api/cart/items", json={"wine_id": f"{route.wine.id}-default", "quantity": 3}
        )
        cart = (await unauthenticated_client.get("/api/cart")).json()
        assert len(cart["lines"]) == 1
        assert cart["total_quantity"] == 5
        assert cart["total_cents"] == 5 * 20000
        assert cart["lines"][0]["title"] == "Rouge 2021"

    async def test_unknown_wine(self, unauthenticated_client):
        response = await unauthenticated_client.post(
            "/api/cart/items", json={"wine_id": "64b000000000000000000000", "quantity": 1}
        )
        assert response.status_code == 404

    async def test_update_to_zero_removes_line(self, unauthenticated_client):
        route = await create_route()
        cart = await fill_cart(unauthenticated_client, route.wine, 2)
        line_id = cart["lines"][0]["line_id"]

        response = await unauthenticated_client.put(f"/api/cart/items/{line_id}", json={"quantity": 0})
        assert response.status_code == 200
        assert response.json()["lines"] == []

    async def test_update_unknown_line(self, unauthenticated_client):
        route = await create_route()
        await fill_cart(unauthenticated_client, route.wine, 2)
        response = await unauthenticated_client.put("/api/cart/items/nope", json={"quantity": 4})
        assert response.status_code == 404

    async def test_validate_six_bottle_rule(self, unauthenticated_client):
        route = await create_route()
        await fill_cart(unauthenticated_client, route.wine, 4)

        result = (await unauthenticated_client.get("/api/checkout/validate")).json()
        assert result["is_valid"] is False
        assert result["producer_validations"][0]["needed"] == 2


class TestCheckout:
    async def test_requires_login(self, unauthenticated_client):
        response = await unauthenticated_client.post("/api/checkout/confirm", json={})
        assert response.status_code == 401

    async def test_requester_cannot_check_out(self, init_test_db):
        requester = await create_user("waiting@example.com", level=MembershipLevel.REQUESTER)
        async with api_client(requester) as ac:
            response = await ac.post("/api/checkout/confirm", json={})
        assert response.status_code == 403

    async def test_empty_cart(self, client):
        response = await client.post("/api/checkout/confirm", json={"address": STOCKHOLM_ADDRESS})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "empty_cart"

    async def test_six_bottle_rule(self, client):
        route = await create_route()
        await fill_cart(client, route.wine, 4)

        response = await client.post("/api/checkout/confirm", json={"address": STOCKHOLM_ADDRESS})
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "six_bottle_rule"
        assert "Add 2 more for 6 total" in detail["message"]

    async def test_incomplete_address(self, client):
        route = await create_route()
        await fill_cart(client, route.wine)

        response = await client.post(
            "/api/checkout/confirm", json={"address": {"city": "Stockholm"}}
        )
        assert response.json()["detail"]["code"] == "address_incomplete"

    async def test_zone_preview(self, client):
        route = await create_route()
        await fill_cart(client, route.wine)

        response = await client.post("/api/checkout/zones", json={"address": STOCKHOLM_ADDRESS})
        assert response.status_code == 200
        zones = response.json()
        assert zones["pickup_zone_name"] == "Languedoc Pickup"
        assert zones["delivery_zone_name"] == "Stockholm Delivery"
        assert [p["id"] for p in zones["pallets"]] == [str(route.pallet.id)]

    async def test_places_reservation_on_route_pallet(self, client, member, mock_email_service):
        route = await create_route()
        await fill_cart(client, route.wine)

        response = await client.post("/api/checkout/confirm", json={"address": STOCKHOLM_ADDRESS})

        assert response.status_code == 201
        reservation = response.json()
        assert reservation["status"] == "placed"
        assert reservation["pallet_id"] == str(route.pallet.id)
        assert reservation["delivery_zone_id"] == str(route.delivery.id)
        assert reservation["subtotal_cents"] == 6 * 20000
        # 5000 kr freight over 720 bottles
        assert reservation["shipping_cents"] == 6 * 694
        assert reservation["total_cents"] == 6 * 20000 + 6 * 694

        cart = (await client.get("/api/cart")).json()
        assert cart["lines"] == []

        membership = await Membership.find_one(Membership.user_id == member.id)
        assert membership.impact_points == 1
        mock_email_service.send_reservation_confirmation.assert_awaited_once()

        mine = (await client.get("/api/reservations")).json()
        assert [r["id"] for r in mine] == [reservation["id"]]

    async def test_explicit_pallet_without_room(self, client, mock_email_service):
        route = await create_route(capacity=12)
        await fill_cart(client, route.wine, 18)

        response = await client.post(
            "/api/checkout/confirm",
            json={"address": STOCKHOLM_ADDRESS, "pallet_id": str(route.pallet.id)},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "pallet_full"

    async def test_no_room_anywhere_leaves_reservation_unassigned(self, client, mock_email_service):
        route = await create_route(capacity=12)
        await fill_cart(client, route.wine, 18)

        response = await client.post("/api/checkout/confirm", json={"address": STOCKHOLM_ADDRESS})
        assert response.status_code == 201
        assert response.json()["pallet_id"] is None
        assert response.json()["shipping_cents"] == 0

    async def test_unknown_discount_code(self, client, mock_email_service):
        route = await create_route()
        await fill_cart(client, route.wine)

        response = await client.post(
            "/api/checkout/confirm",
            json={"address": STOCKHOLM_ADDRESS, "discount_code": "NOPE1234"},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_discount_code"
        assert await Reservation.find_all().count() == 0

    async def test_saved_address_is_reused(self, client, member, mock_email_service):
        route = await create_route()
        await fill_cart(client, route.wine)
        await client.post("/api/checkout/confirm", json={"address": STOCKHOLM_ADDRESS})

        await fill_cart(client, route.wine)
        response = await client.post("/api/checkout/confirm", json={})
        assert response.status_code == 201
        assert response.json()["address"]["city"] == "Stockholm"

    async def test_progression_buff_discounts_the_order(self, client, member, mock_email_service):
        route = await create_route()
        buff = ProgressionBuff(user_id=member.id, buff_percentage=1.0)
        await buff.insert()
        await fill_cart(client, route.wine)

        response = await client.post("/api/checkout/confirm", json={"address": STOCKHOLM_ADDRESS})

        assert response.status_code == 201
        reservation = response.json()
        assert reservation["buff_percentage"] == 1.0
        assert reservation["discount_cents"] == 1200
        assert reservation["total_cents"] == 6 * 20000 - 1200 + 6 * 694
        buff = await ProgressionBuff.get(buff.id)
        assert buff.used_at is not None
        assert str(buff.used_on_order_id) == reservation["id"]


class TestPalletPayment:
    """A full pallet asks for payment; the Stripe webhook confirms it."""

    @pytest.fixture
    def stripe_session(self):
        session = SimpleNamespace(url="https://checkout.stripe.test/c/cs_test_1", id="cs_test_1")
        with patch(
            "crowdvine.services.payments.create_checkout_session",
            AsyncMock(return_value=session),
        ) as create:
            yield create

    async def test_full_pallet_completes_and_gets_paid(
        self, client, unauthenticated_client, mock_email_service, stripe_session
    ):
        route = await create_route(capacity=6)
        await fill_cart(client, route.wine)

        response = await client.post("/api/checkout/confirm", json={"address": STOCKHOLM_ADDRESS})

        assert response.status_code == 201
        placed = response.json()
        assert placed["status"] == "pending_payment"
        assert placed["payment_link"] == "https://checkout.stripe.test/c/cs_test_1"
        assert placed["payment_deadline"] is not None
        params = stripe_session.await_args.args[0]
        assert params["metadata"]["reservation_id"] == placed["id"]
        assert params["line_items"][0]["price_data"]["unit_amount"] == placed["total_cents"]
        mock_email_service.send_payment_request.assert_awaited_once()

        pallet = await Pallet.get(route.pallet.id)
        assert pallet.is_complete
        assert pallet.status == PalletStatus.COMPLETE

        event = {
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_test_1",
                    "payment_intent": "pi_test_1",
                    "metadata": {"reservation_id": placed["id"]},
                }
            },
        }
        payload = json.dumps(event)
        settings = MagicMock(stripe_webhook_secret=WEBHOOK_SECRET)
        with patch("crowdvine.services.payments.settings", settings):
            webhook = await unauthenticated_client.post(
                "/api/stripe/webhook",
                content=payload,
                headers={"stripe-signature": stripe_signature(payload)},
            )

        assert webhook.status_code == 200
        reservation = await Reservation.get(PydanticObjectId(placed["id"]))
        assert reservation.status == ReservationStatus.CONFIRMED
        assert reservation.payment_status == PaymentStatus.PAID
        assert reservation.payment_intent_id == "pi_test_1"
        pallet = await Pallet.get(route.pallet.id)
        assert pallet.status == PalletStatus.AWAITING_PICKUP
        mock_email_service.send_payment_received.assert_awaited_once()

    async def test_payment_status_endpoint(self, client, mock_email_service, stripe_session):
        route = await create_route(capacity=6)
        await fill_cart(client, route.wine)
        placed = (await client.post("/api/checkout/confirm", json={"address": STOCKHOLM_ADDRESS})).json()
        response = await client.get(f"/api/reservations/{placed['id']}/status")
        assert response.status_code == 200
        assert response.json()["has_payment_link"] is True
        assert response.json()["reservation_status"] == "pending_payment"

    async def test_payment_link_failure_leaves_pallet_open(self, client, mock_email_service):
        route = await create_route(capacity=6)
        await fill_cart(client, route.wine)

        with patch(
            "crowdvine.services.payments.create_checkout_session",
            AsyncMock(side_effect=stripe.StripeError("Stripe is down")),
        ):
            response = await client.post("/api/checkout/confirm", json={"address": STOCKHOLM_ADDRESS})

        assert response.status_code == 201
        assert response.json()["payment_link"] is None
        pallet = await Pallet.get(route.pallet.id)
        assert pallet.is_complete is False
        assert pallet.status == PalletStatus.OPEN
        mock_email_service.send_payment_request.assert_not_awaited()


class TestStripeWebhook:
    async def test_missing_signature(self, unauthenticated_client):
        response = await unauthenticated_client.post("/api/stripe/webhook", content="{}")
        assert response.status_code == 400

    async def test_bad_signature(self, unauthenticated_client):
        settings = MagicMock(stripe_webhook_secret=WEBHOOK_SECRET)
        with patch("crowdvine.services.payments.settings", settings):
            response = await unauthenticated_client.post(
                "/api/stripe/webhook",
                content="{}",
                headers={"stripe-signature": stripe_signature("{}", "whsec_other")},
            )
        assert response.status_code == 400

    async def test_non_utf8_body(self, unauthenticated_client):
        settings = MagicMock(stripe_webhook_secret=WEBHOOK_SECRET)
        with patch("crowdvine.services.payments.settings", settings):
            response = await unauthenticated_client.post(
                "/api/stripe/webhook",
                content=b"\xff\xfe{}",
                headers={"stripe-signature": "t=1,v1=abc"},
            )
        assert response.status_code == 400

    async def test_unconfigured_secret(self, unauthenticated_client):
        settings = MagicMock(stripe_webhook_secret=None)
        with patch("crowdvine.services.payments.settings", settings):
            response = await unauthenticated_client.post(
                "/api/stripe/webhook",
                content="{}",
                headers={"stripe-signature": stripe_signature("{}")},
            )
        assert response.status_code == 500

    async def test_ignored_event_type(self, unauthenticated_client):
        payload = json.dumps({"id": "evt_2", "type": "customer.created", "data": {"object": {}}})
        settings = MagicMock(stripe_webhook_secret=WEBHOOK_SECRET)
        with patch("crowdvine.services.payments.settings", settings):
            response = await unauthenticated_client.post(
                "/api/stripe/webhook",
                content=payload,
                headers={"stripe-signature": stripe_signature(payload)},
            )
        assert response.status_code == 200
        assert response.json() == {"received": True}


class TestWebhookEvents:
    """Payment intent and session events update the reservation they name."""

    async def _reservation(self, member, **fields):
        route = await create_route()
        reservation = Reservation(
            user_id=member.id,
            pallet_id=route.pallet.id,
            items=[ReservationItem(wine_id=route.wine.id, quantity=6)],
            status=ReservationStatus.PENDING_PAYMENT,
            subtotal_cents=120000,
            total_cents=120000,
            **fields,
        )
        await reservation.insert()
        return route, reservation

    async def _post(self, client, event_type, obj):
        payload = json.dumps({"id": "evt_3", "type": event_type, "data": {"object": obj}})
        settings = MagicMock(stripe_webhook_secret=WEBHOOK_SECRET)
        with patch("crowdvine.services.payments.settings", settings):
            response = await client.post(
                "/api/stripe/webhook",
                content=payload,
                headers={"stripe-signature": stripe_signature(payload)},
            )
        assert response.status_code == 200
        return response

    async def test_payment_intent_succeeded(self, member, unauthenticated_client, mock_email_service):
        route, reservation = await self._reservation(member)

        await self._post(
            unauthenticated_client,
            "payment_intent.succeeded",
            {"id": "pi_ok", "metadata": {"reservation_id": str(reservation.id)}},
        )

        reservation = await Reservation.get(reservation.id)
        assert reservation.status == ReservationStatus.CONFIRMED
        assert reservation.payment_status == PaymentStatus.PAID
        assert reservation.payment_intent_id == "pi_ok"
        pallet = await Pallet.get(route.pallet.id)
        assert pallet.status == PalletStatus.AWAITING_PICKUP
        mock_email_service.send_payment_received.assert_awaited_once()

    async def test_payment_intent_succeeded_twice_sends_one_receipt(
        self, member, unauthenticated_client, mock_email_service
    ):
        _, reservation = await self._reservation(member)
        intent = {"id": "pi_dup", "metadata": {"reservation_id": str(reservation.id)}}

        await self._post(unauthenticated_client, "payment_intent.succeeded", intent)
        await self._post(unauthenticated_client, "payment_intent.succeeded", intent)

        mock_email_service.send_payment_received.assert_awaited_once()

    async def test_payment_intent_without_reservation_is_ignored(
        self, member, unauthenticated_client, mock_email_service
    ):
        _, reservation = await self._reservation(member)

        await self._post(unauthenticated_client, "payment_intent.succeeded", {"id": "pi_x", "metadata": {}})

        reservation = await Reservation.get(reservation.id)
        assert reservation.payment_status == PaymentStatus.PENDING
        mock_email_service.send_payment_received.assert_not_awaited()

    async def test_payment_failed(self, member, unauthenticated_client, mock_email_service):
        route, reservation = await self._reservation(member)

        await self._post(
            unauthenticated_client,
            "payment_intent.payment_failed",
            {"id": "pi_declined", "metadata": {"reservation_id": str(reservation.id)}},
        )

        reservation = await Reservation.get(reservation.id)
        assert reservation.payment_status == PaymentStatus.FAILED
        assert reservation.payment_intent_id == "pi_declined"
        assert reservation.status == ReservationStatus.PENDING_PAYMENT
        pallet = await Pallet.get(route.pallet.id)
        assert pallet.status == PalletStatus.OPEN

    async def test_checkout_session_expired(self, member, unauthenticated_client, mock_email_service):
        _, reservation = await self._reservation(member, payment_session_id="cs_old")

        await self._post(
            unauthenticated_client,
            "checkout.session.expired",
            {"id": "cs_old", "metadata": {"reservation_id": str(reservation.id)}},
        )

        reservation = await Reservation.get(reservation.id)
        assert reservation.payment_status == PaymentStatus.EXPIRED
        assert reservation.status == ReservationStatus.PENDING_PAYMENT
