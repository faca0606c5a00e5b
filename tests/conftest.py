"""Pytest configuration and fixtures for CrowdVine tests with real MongoDB.

Tests that use the ``init_test_db`` fixture (directly or through a client
fixture) are marked ``mongo`` and skipped when TEST_MONGODB_URL is not
reachable. Everything else runs without a database.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from beanie import init_beanie
from httpx import ASGITransport, AsyncClient
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from crowdvine.database import get_document_models
from crowdvine.models import (
    Membership,
    MembershipLevel,
    Pallet,
    PalletZone,
    Producer,
    User,
    UserRole,
    Wine,
    ZoneType,
)
from crowdvine.models.base import utcnow
from crowdvine.services.auth import create_access_token, get_password_hash

# MongoDB connection URL for tests (can be overridden with env var)
TEST_MONGODB_URL = os.environ.get("TEST_MONGODB_URL", "mongodb://localhost:27017")

_mongo_available: bool | None = None


def mongo_available() -> bool:
    """Ping the test server once per session."""
    global _mongo_available
    if _mongo_available is None:
        client = MongoClient(TEST_MONGODB_URL, serverSelectionTimeoutMS=1000)
        try:
            client.admin.command("ping")
            _mongo_available = True
        except PyMongoError:
            _mongo_available = False
        finally:
            client.close()
    return _mongo_available


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "init_test_db" in getattr(item, "fixturenames", ()):
            item.add_marker(pytest.mark.mongo)


def create_test_app():
    """A copy of the main app without the database lifespan or rate limits."""
    from fastapi import FastAPI
    from slowapi import _rate_limit_exceeded_handler
    from slowapi.errors import RateLimitExceeded

    from crowdvine import __version__
    from crowdvine.main import app as main_app
    from crowdvine.routers._common import limiter

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        yield

    test_app = FastAPI(title="CrowdVine Test", version=__version__, lifespan=test_lifespan)
    for route in main_app.routes:
        test_app.routes.append(route)

    limiter.enabled = False
    test_app.state.limiter = limiter
    test_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    return test_app


_test_app = None


def get_test_app():
    global _test_app
    if _test_app is None:
        _test_app = create_test_app()
    return _test_app


@pytest_asyncio.fixture(scope="function")
async def mongo_client():
    if not mongo_available():
        pytest.skip(f"MongoDB not reachable at {TEST_MONGODB_URL}")
    client = AsyncIOMotorClient(TEST_MONGODB_URL, maxPoolSize=10, minPoolSize=1, tz_aware=True)
    yield client
    client.close()


@pytest_asyncio.fixture(scope="function")
async def init_test_db(mongo_client):
    """Initialize Beanie with a unique database, dropped after the test."""
    db_name = f"test_crowdvine_{uuid.uuid4().hex[:8]}"
    db = mongo_client[db_name]
    await init_beanie(database=db, document_models=get_document_models())
    yield db
    await mongo_client.drop_database(db_name)


async def create_user(
    email: str,
    role: UserRole = UserRole.USER,
    level: MembershipLevel | None = MembershipLevel.BASIC,
    password: str = "testpassword",
) -> User:
    """Insert a verified user, with a membership unless level is None."""
    now = utcnow()
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        is_active=True,
        is_verified=True,
        is_superuser=role == UserRole.ADMIN,
        role=role,
        access_granted_at=now if level not in (None, MembershipLevel.REQUESTER) else None,
    )
    await user.insert()
    if level is not None:
        await Membership(user_id=user.id, level=level).insert()
    return user


def token_for(user: User) -> str:
    return create_access_token(data={"sub": str(user.id)})


@asynccontextmanager
async def api_client(user: User | None = None) -> AsyncGenerator[AsyncClient, None]:
    headers = {"Authorization": f"Bearer {token_for(user)}"} if user else {}
    async with AsyncClient(
        transport=ASGITransport(app=get_test_app()),
        base_url="http://test",
        headers=headers,
    ) as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def member(init_test_db) -> User:
    return await create_user("member@example.com")


@pytest_asyncio.fixture(scope="function")
async def admin_user(init_test_db) -> User:
    return await create_user("admin@example.com", role=UserRole.ADMIN, level=MembershipLevel.ADMIN)


@pytest_asyncio.fixture(scope="function")
async def client(member) -> AsyncGenerator[AsyncClient, None]:
    """Client authenticated as a basic member."""
    async with api_client(member) as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def admin_client(admin_user) -> AsyncGenerator[AsyncClient, None]:
    async with api_client(admin_user) as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def unauthenticated_client(init_test_db) -> AsyncGenerator[AsyncClient, None]:
    async with api_client() as ac:
        yield ac


@pytest.fixture
def mock_email_service():
    """Stop emails from leaving the test run; every send reports success."""
    service = AsyncMock()
    for name in (
        "send_verification_email",
        "send_password_reset_email",
        "send_reservation_confirmation",
        "send_payment_request",
        "send_payment_received",
        "send_access_approved_email",
    ):
        setattr(service, name, AsyncMock(return_value=True))
    targets = [
        "crowdvine.services.checkout.get_email_service",
        "crowdvine.services.invitations.get_email_service",
        "crowdvine.services.payments.get_email_service",
    ]
    patchers = [patch(target, return_value=service) for target in targets]
    for p in patchers:
        p.start()
    yield service
    for p in patchers:
        p.stop()


async def create_route(
    capacity: int = 720,
    price_cents: int = 20000,
    producer_name: str = "Domaine du Pic",
    b2b_stock: int = 0,
) -> SimpleNamespace:
    """A producer in Languedoc, one wine and an open pallet to Stockholm."""
    pickup = PalletZone(
        name="Languedoc Pickup",
        zone_type=ZoneType.PICKUP,
        center_lat=43.61,
        center_lon=3.88,
        radius_km=150,
        country_code="FR",
    )
    await pickup.insert()
    delivery = PalletZone(
        name="Stockholm Delivery",
        zone_type=ZoneType.DELIVERY,
        center_lat=59.3293,
        center_lon=18.0686,
        radius_km=50,
        country_code="SE",
    )
    await delivery.insert()

    producer = Producer(
        name=producer_name,
        handle=producer_name.lower().replace(" ", "-"),
        country_code="FR",
        lat=43.7,
        lon=3.8,
        pickup_zone_id=pickup.id,
    )
    await producer.insert()

    wine = Wine(
        handle=f"{producer.handle}-rouge-2021",
        wine_name="Rouge",
        vintage="2021",
        producer_id=producer.id,
        cost_amount=8.0,
        exchange_rate=11.5,
        alcohol_tax_cents=2219,
        margin_percentage=30.0,
        base_price_cents=price_cents,
        b2b_stock=b2b_stock,
    )
    await wine.insert()

    pallet = Pallet(
        name="Languedoc to Stockholm",
        pickup_zone_id=pickup.id,
        delivery_zone_id=delivery.id,
        cost_cents=500000,
        bottle_capacity=capacity,
    )
    await pallet.insert()
    return SimpleNamespace(pickup=pickup, delivery=delivery, producer=producer, wine=wine, pallet=pallet)


STOCKHOLM_ADDRESS = {
    "full_name": "Test Member",
    "street": "Drottninggatan 1",
    "postcode": "111 51",
    "city": "Stockholm",
    "country_code": "SE",
}
