"""Bulk product upload: parse spreadsheets, review rows, create wines."""

from .constants import ALLOWED_EXTENSIONS, MAX_ROWS, MAX_UPLOAD_BYTES, REQUIRED_HEADERS, VALID_COLORS
from .matching import levenshtein_distance, similar_names, similarity
from .parsers import BulkUploadError, ParsedSheet, missing_headers, parse_csv, parse_upload, parse_xlsx
from .processor import commit_upload_batch, create_upload_batch
from .review import parse_products, review_product, review_products, row_to_product, summarize

__all__ = [
    # Constants
    "ALLOWED_EXTENSIONS",
    "MAX_ROWS",
    "MAX_UPLOAD_BYTES",
    "REQUIRED_HEADERS",
    "VALID_COLORS",
    # Parsers
    "BulkUploadError",
    "ParsedSheet",
    "missing_headers",
    "parse_csv",
    "parse_upload",
    "parse_xlsx",
    # Matching
    "levenshtein_distance",
    "similar_names",
    "similarity",
    # Review
    "parse_products",
    "review_product",
    "review_products",
    "row_to_product",
    "summarize",
    # Processor
    "commit_upload_batch",
    "create_upload_batch",
]
