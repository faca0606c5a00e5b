"""MongoDB connection and Beanie registration for CrowdVine documents."""

import logging

from beanie import Document, init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from crowdvine.config import settings

logger = logging.getLogger(__name__)

client: AsyncIOMotorClient | None = None
database: AsyncIOMotorDatabase | None = None


def get_document_models() -> list[type[Document]]:
    """Every Document class exported by ``crowdvine.models``.

    Embedded models (cart lines, reservation items, completion rules) are plain
    pydantic models and are skipped.
    """
    import crowdvine.models as models

    exported = (getattr(models, name) for name in models.__all__)
    return [obj for obj in exported if isinstance(obj, type) and issubclass(obj, Document)]


async def init_db(mongodb_url: str | None = None, mongodb_database: str | None = None) -> None:
    """Connect to MongoDB and register the document models.

    Arguments default to the configured ``mongodb_url`` and ``mongodb_database``.
    """
    global client, database

    client = AsyncIOMotorClient(
        mongodb_url or settings.mongodb_url,
        minPoolSize=settings.min_pool_size,
        maxPoolSize=settings.max_pool_size,
        tz_aware=True,
    )
    database = client[mongodb_database or settings.mongodb_database]
    await init_beanie(database=database, document_models=get_document_models())
    logger.info("Connected to MongoDB database %s", database.name)


async def close_db() -> None:
    global client, database

    if client is not None:
        client.close()
    client = None
    database = None


async def ping_database() -> bool:
    """Check that the MongoDB server answers a ping."""
    if client is None:
        return False
    try:
        await client.admin.command("ping")
    except Exception:
        logger.warning("MongoDB ping failed", exc_info=True)
        return False
    return True
