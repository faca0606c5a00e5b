"""UploadBatch document model for tracking bulk product uploads."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field

from crowdvine.models.base import utcnow


class UploadStatus(str, Enum):
    """Status of an upload batch."""

    REVIEWED = "reviewed"
    COMMITTED = "committed"
    FAILED = "failed"


class UploadBatch(Document):
    """Tracks a product spreadsheet through the upload/review/commit workflow."""

    owner_id: Indexed(PydanticObjectId)
    filename: str
    file_type: str  # "csv" or "xlsx"
    uploaded_at: datetime = Field(default_factory=utcnow)
    status: UploadStatus = UploadStatus.REVIEWED

    # Parsed products and their per-row review
    products: list[dict[str, Any]] = Field(default_factory=list)
    review: list[dict[str, Any]] = Field(default_factory=list)
    summary: dict[str, int] = Field(default_factory=dict)

    # Commit results
    wines_created: int = 0
    producers_created: int = 0
    rows_skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    committed_at: Optional[datetime] = None

    class Settings:
        name = "upload_batches"
