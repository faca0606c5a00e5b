"""File parsing functions for CSV and XLSX product uploads."""

import csv
import io
from typing import Any, NamedTuple

from openpyxl import load_workbook

from .constants import MAX_ROWS, REQUIRED_HEADERS


class BulkUploadError(Exception):
    """Raised when an upload cannot be parsed or committed."""


class ParsedSheet(NamedTuple):
    headers: list[str]
    rows: list[dict[str, Any]]
    # Non-empty rows past MAX_ROWS that were not read
    truncated: int = 0


def parse_csv(file_content: bytes) -> ParsedSheet:
    """Parse CSV file content into lowercase headers and rows.

    Tries UTF-8 first, falls back to Latin-1.

    Raises:
        BulkUploadError: If the CSV is empty or has no headers.
    """
    reader = None
    for encoding in ("utf-8-sig", "latin-1"):
        try:
            text_stream = io.TextIOWrapper(io.BytesIO(file_content), encoding=encoding)
            reader = csv.DictReader(text_stream)
            # Force header read to trigger any decode error early
            _ = reader.fieldnames
            break
        except (UnicodeDecodeError, csv.Error):
            reader = None
            continue

    if reader is None or reader.fieldnames is None:
        raise BulkUploadError("CSV file has no headers")

    headers = [h.strip().lower() for h in reader.fieldnames if h and h.strip()]
    if not headers:
        raise BulkUploadError("CSV file has no valid headers")

    rows: list[dict[str, Any]] = []
    truncated = 0
    try:
        for i, row in enumerate(reader):
            cleaned = {
                h.strip().lower(): str(v).strip() if v else ""
                for h, v in row.items()
                if h and h.strip()
            }
            if not any(v for v in cleaned.values()):
                continue
            if i >= MAX_ROWS:
                truncated += 1
            else:
                rows.append(cleaned)
    except (UnicodeDecodeError, csv.Error) as e:
        raise BulkUploadError(f"Could not read CSV file: {e}") from e

    return ParsedSheet(headers, rows, truncated)


def parse_xlsx(file_content: bytes) -> ParsedSheet:
    """Parse the first sheet of an XLSX file into lowercase headers and rows.

    Raises:
        BulkUploadError: If the workbook is empty or has no headers.
    """
    try:
        wb = load_workbook(filename=io.BytesIO(file_content), read_only=True, data_only=True)
    except Exception as e:
        raise BulkUploadError(f"Could not read XLSX file: {e}") from e
    ws = wb.active
    if ws is None:
        wb.close()
        raise BulkUploadError("XLSX file has no worksheets")

    row_iter = ws.iter_rows(values_only=True)
    try:
        raw_headers = next(row_iter)
    except StopIteration:
        wb.close()
        raise BulkUploadError("XLSX file is empty")

    headers = [str(h).strip().lower() if h is not None else "" for h in raw_headers]
    if not any(headers):
        wb.close()
        raise BulkUploadError("XLSX file has no valid headers")

    rows: list[dict[str, Any]] = []
    truncated = 0
    for i, row_values in enumerate(row_iter):
        row_dict: dict[str, Any] = {}
        for j, header in enumerate(headers):
            if not header:
                continue
            val = row_values[j] if j < len(row_values) else None
            row_dict[header] = str(val).strip() if val is not None else ""
        if not any(v for v in row_dict.values()):
            continue
        if i >= MAX_ROWS:
            truncated += 1
        else:
            rows.append(row_dict)

    wb.close()
    return ParsedSheet([h for h in headers if h], rows, truncated)


def missing_headers(headers: list[str]) -> list[str]:
    present = {h.lower() for h in headers}
    return [h for h in REQUIRED_HEADERS if h not in present]


def parse_upload(filename: str, file_content: bytes) -> ParsedSheet:
    """Dispatch on the file extension and check the required columns."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension == "csv":
        sheet = parse_csv(file_content)
    elif extension == "xlsx":
        sheet = parse_xlsx(file_content)
    else:
        raise BulkUploadError("Only .csv and .xlsx files are supported")

    missing = missing_headers(sheet.headers)
    if missing:
        raise BulkUploadError(f"Missing required headers: {', '.join(missing)}")
    if not sheet.rows:
        raise BulkUploadError("File contains no product rows")
    return sheet
