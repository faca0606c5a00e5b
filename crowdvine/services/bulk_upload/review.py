"""Row validation and review of parsed product rows."""

from typing import Any

from crowdvine.models.producer import Producer
from crowdvine.models.wine import Wine
from crowdvine.services.catalog import generate_handle

from .constants import MAX_SUGGESTIONS, SIMILARITY_THRESHOLD, VALID_COLORS
from .matching import similar_names

REQUIRED_FIELDS = [
    ("wine name", "Wine name"),
    ("vintage", "Vintage"),
    ("grape varieties", "Grape varieties"),
    ("producer name", "Producer name"),
    ("description", "Description"),
    ("image url", "Image URL"),
]


def _parse_price(raw: str) -> float | None:
    try:
        return float(raw.replace(" ", "").replace(",", "."))
    except (AttributeError, ValueError):
        return None


def row_to_product(row: dict[str, Any], row_number: int) -> tuple[dict[str, Any], list[str]]:
    """Convert a raw row to product fields, with validation errors.

    Args:
        row: Row keyed by lowercase header.
        row_number: Spreadsheet row number used in messages.
    """
    errors = []
    for key, label in REQUIRED_FIELDS:
        if not row.get(key):
            errors.append(f"Row {row_number}: {label} is required")

    color = (row.get("color") or "").lower()
    if color not in VALID_COLORS:
        errors.append(f"Row {row_number}: Color must be one of {', '.join(sorted(VALID_COLORS))}")

    price = _parse_price(row.get("base price (sek)", ""))
    if price is None or price <= 0:
        errors.append(f"Row {row_number}: Base price must be a positive number")

    wine_name = row.get("wine name", "")
    vintage = row.get("vintage", "")
    description = row.get("description", "")
    product = {
        "wine_name": wine_name,
        "vintage": vintage,
        "grape_varieties": row.get("grape varieties", ""),
        "color": color,
        "base_price_cents": round(price * 100) if price and price > 0 else 0,
        "producer_name": row.get("producer name", ""),
        "handle": row.get("handle") or generate_handle(wine_name, vintage),
        "description": description,
        "description_html": row.get("description html") or f"<p>{description}</p>",
        "image_url": row.get("image url", ""),
    }
    return product, errors


def parse_products(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Products with their row number and validation errors attached."""
    products = []
    for idx, row in enumerate(rows):
        row_number = idx + 2  # header is row 1
        product, errors = row_to_product(row, row_number)
        product["row_number"] = row_number
        product["errors"] = errors
        products.append(product)
    return products


def review_product(
    product: dict[str, Any], existing_handles: set[str], producer_names: list[str]
) -> dict[str, Any]:
    """Status and issues for one product.

    Status is "error" for rows that will not be created, "warning" for rows
    that will be created with something to double check.
    """
    issues = list(product.get("errors", []))
    status = "error" if issues else "valid"
    similar: list[dict] = []

    if product["handle"] in existing_handles:
        status = "error"
        issues.append(f"Wine with handle \"{product['handle']}\" already exists")

    name = product["producer_name"]
    if name:
        known = {n.lower() for n in producer_names}
        if name.lower() not in known:
            if producer_names:
                similar = similar_names(name, producer_names, SIMILARITY_THRESHOLD, MAX_SUGGESTIONS)
                if similar:
                    status = "error" if status == "error" else "warning"
                    issues.append(f"Producer \"{name}\" not found")
            else:
                status = "error" if status == "error" else "warning"
                issues.append(f"Producer \"{name}\" will be created")

    return {
        "row_number": product["row_number"],
        "wine_name": product["wine_name"],
        "vintage": product["vintage"],
        "handle": product["handle"],
        "producer_name": name,
        "base_price_cents": product["base_price_cents"],
        "status": status,
        "issues": issues,
        "similar_producers": similar,
    }


def summarize(review: list[dict[str, Any]], truncated: int = 0) -> dict[str, int]:
    """Row counts by status; ``truncated`` counts rows past the row limit."""
    return {
        "total": len(review),
        "valid": sum(1 for r in review if r["status"] == "valid"),
        "warnings": sum(1 for r in review if r["status"] == "warning"),
        "errors": sum(1 for r in review if r["status"] == "error"),
        "truncated": truncated,
    }


async def review_products(
    products: list[dict[str, Any]], truncated: int = 0
) -> tuple[list[dict[str, Any]], dict[str, int]]:
    """Check products against existing wines and producers."""
    handles = [p["handle"] for p in products]
    existing_handles = {
        w.handle for w in await Wine.find({"handle": {"$in": handles}}).to_list()
    }
    producer_names = [p.name for p in await Producer.find_all().to_list()]
    review = []
    seen: set[str] = set()
    for product in products:
        result = review_product(product, existing_handles, producer_names)
        if product["handle"] in seen:
            result["status"] = "error"
            result["issues"].append(f"Handle \"{product['handle']}\" appears more than once in the file")
        seen.add(product["handle"])
        review.append(result)
    return review, summarize(review, truncated)
