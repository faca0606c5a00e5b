"""Admin bulk product upload: upload and review, then commit."""

import logging
from typing import Any

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from crowdvine.models.upload_batch import UploadBatch
from crowdvine.services.auth import RequireAdmin
from crowdvine.services.bulk_upload import (
    ALLOWED_EXTENSIONS,
    MAX_UPLOAD_BYTES,
    BulkUploadError,
    commit_upload_batch,
    create_upload_batch,
)

from ._common import get_or_404

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_file_extension(filename: str | None) -> str:
    if not filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def _batch_to_dict(batch: UploadBatch) -> dict[str, Any]:
    return {
        "batch_id": str(batch.id),
        "filename": batch.filename,
        "status": batch.status.value,
        "summary": batch.summary,
        "products": batch.review,
        "wines_created": batch.wines_created,
        "producers_created": batch.producers_created,
        "rows_skipped": batch.rows_skipped,
        "errors": batch.errors,
        "uploaded_at": batch.uploaded_at,
        "committed_at": batch.committed_at,
    }


@router.post("/parse")
async def upload_products(
    admin: RequireAdmin,
    file: UploadFile = File(..., description="CSV or XLSX product sheet"),
) -> dict[str, Any]:
    """Parse and review a product sheet without creating anything."""
    ext = _get_file_extension(file.filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type '.{ext}'. Allowed: CSV, XLSX",
        )

    # Read in chunks to avoid unbounded memory for oversized files
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(64 * 1024)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > MAX_UPLOAD_BYTES:
            raise HTTPException(
                status_code=status.HTTP_413_CONTENT_TOO_LARGE,
                detail="File exceeds maximum size of 10 MB",
            )
        chunks.append(chunk)

    try:
        batch = await create_upload_batch(admin.id, file.filename or "upload", b"".join(chunks))
    except BulkUploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _batch_to_dict(batch)


@router.get("/{batch_id}")
async def get_upload(batch_id: str, admin: RequireAdmin) -> dict[str, Any]:
    return _batch_to_dict(await get_or_404(UploadBatch, batch_id, "Upload batch"))


@router.post("/{batch_id}/commit")
async def commit_upload(batch_id: str, admin: RequireAdmin) -> dict[str, Any]:
    """Create the reviewed wines; rows with errors are skipped."""
    batch = await get_or_404(UploadBatch, batch_id, "Upload batch")
    try:
        batch = await commit_upload_batch(batch)
    except BulkUploadError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    message = f"{batch.wines_created} products uploaded successfully"
    if batch.errors:
        message += f" with {len(batch.errors)} errors"
    return {"message": message, **_batch_to_dict(batch)}
