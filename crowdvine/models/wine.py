"""Wine document model for the storefront catalog."""

from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field

from crowdvine.models.base import utcnow


class WineColor(str, Enum):
    RED = "red"
    WHITE = "white"
    ROSE = "rose"
    ORANGE = "orange"
    SPARKLING = "sparkling"


class Wine(Document):
    """A wine offered in the shop.

    Pricing inputs (cost, exchange rate, alcohol tax, margin) are stored with
    the wine; base_price_cents is derived from them and kept in sync on save.
    """

    handle: Indexed(str, unique=True)
    wine_name: Indexed(str)
    vintage: str
    grape_varieties: Optional[str] = None
    color: Optional[WineColor] = None
    producer_id: Optional[Indexed(PydanticObjectId)] = None

    label_image_path: Optional[str] = None
    description: Optional[str] = None
    description_html: Optional[str] = None

    # Pricing inputs
    cost_currency: str = "EUR"
    cost_amount: float = 0.0
    exchange_rate: float = 1.0
    alcohol_tax_cents: int = 2219
    price_includes_vat: bool = True
    margin_percentage: float = 10.0

    # Derived consumer price in öre (incl. VAT when price_includes_vat)
    base_price_cents: int = 0

    # B2B
    b2b_margin_percentage: Optional[float] = None
    b2b_stock: int = 0

    is_live: bool = True

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "wines"
        indexes = [
            "is_live",
            [
                ("wine_name", "text"),
                ("grape_varieties", "text"),
                ("description", "text"),
            ],
        ]

    @property
    def title(self) -> str:
        return f"{self.wine_name} {self.vintage}".strip()

    def __repr__(self) -> str:
        return f"<Wine(id={self.id}, name={self.wine_name}, vintage={self.vintage})>"
