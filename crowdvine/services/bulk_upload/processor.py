"""Upload batch handling: review on upload, create records on commit."""

import logging
import re

from beanie import PydanticObjectId
from pymongo.errors import DuplicateKeyError

from crowdvine.models.base import utcnow
from crowdvine.models.producer import Producer
from crowdvine.models.upload_batch import UploadBatch, UploadStatus
from crowdvine.models.wine import Wine, WineColor
from crowdvine.services.catalog import CatalogError, create_producer, generate_handle, unique_handle

from .constants import ALLOWED_EXTENSIONS, MAX_ROWS, MAX_UPLOAD_BYTES
from .parsers import BulkUploadError, parse_upload
from .review import parse_products, review_products

logger = logging.getLogger(__name__)


async def create_upload_batch(
    owner_id: PydanticObjectId, filename: str, file_content: bytes
) -> UploadBatch:
    """Parse and review an uploaded file, storing the result for commit.

    Raises:
        BulkUploadError: File too large, wrong type, unreadable or missing columns.
    """
    if len(file_content) > MAX_UPLOAD_BYTES:
        raise BulkUploadError(f"File too large. Maximum size is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB")
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension not in ALLOWED_EXTENSIONS:
        raise BulkUploadError("Only .csv and .xlsx files are supported")

    sheet = parse_upload(filename, file_content)
    products = parse_products(sheet.rows)
    review, summary = await review_products(products, sheet.truncated)
    if sheet.truncated:
        logger.warning(
            "Upload %s exceeds %d rows, %d rows not read", filename, MAX_ROWS, sheet.truncated
        )

    batch = UploadBatch(
        owner_id=owner_id,
        filename=filename,
        file_type=extension,
        products=products,
        review=review,
        summary=summary,
    )
    await batch.insert()
    logger.info(
        "Upload batch %s: %d rows (%d errors, %d warnings)",
        batch.id,
        summary["total"],
        summary["errors"],
        summary["warnings"],
    )
    return batch


async def _producer_for(name: str, cache: dict[str, Producer]) -> tuple[Producer, bool]:
    """Existing producer by case-insensitive name, created when missing."""
    key = name.lower()
    if key in cache:
        return cache[key], False
    producer = await Producer.find_one(
        {"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}}
    )
    created = False
    if producer is None:
        handle = await unique_handle(Producer, generate_handle(name))
        producer = await create_producer({"name": name, "handle": handle})
        created = True
    cache[key] = producer
    return producer, created


async def commit_upload_batch(batch: UploadBatch) -> UploadBatch:
    """Create wines (and missing producers) for every row without errors."""
    if batch.status == UploadStatus.COMMITTED:
        raise BulkUploadError("Upload batch has already been committed")

    status_by_row = {r["row_number"]: r["status"] for r in batch.review}
    producers: dict[str, Producer] = {}
    wines_created = 0
    producers_created = 0
    rows_skipped = 0
    errors: list[str] = []

    for product in batch.products:
        row_number = product["row_number"]
        if status_by_row.get(row_number) == "error":
            rows_skipped += 1
            continue
        try:
            producer, created = await _producer_for(product["producer_name"], producers)
            producers_created += int(created)
            wine = Wine(
                handle=product["handle"],
                wine_name=product["wine_name"],
                vintage=product["vintage"],
                grape_varieties=product["grape_varieties"],
                color=WineColor(product["color"]),
                producer_id=producer.id,
                label_image_path=product["image_url"] or None,
                description=product["description"],
                description_html=product["description_html"],
                cost_currency="SEK",
                base_price_cents=product["base_price_cents"],
            )
            await wine.insert()
            wines_created += 1
        except (CatalogError, DuplicateKeyError, ValueError) as e:
            rows_skipped += 1
            errors.append(f"Row {row_number}: {e}")
            logger.warning("Bulk upload error on row %d: %s", row_number, e)

    batch.wines_created = wines_created
    batch.producers_created = producers_created
    batch.rows_skipped = rows_skipped
    batch.errors = errors
    batch.status = UploadStatus.COMMITTED
    batch.committed_at = utcnow()
    await batch.save()
    logger.info(
        "Upload batch %s committed: %d wines, %d producers, %d skipped",
        batch.id,
        wines_created,
        producers_created,
        rows_skipped,
    )
    return batch
