"""Shopping cart document keyed by the cart cookie."""

import uuid
from datetime import datetime
from typing import Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, Field

from crowdvine.models.base import utcnow


class CartLine(BaseModel):
    line_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    wine_id: PydanticObjectId
    quantity: int = Field(default=1, gt=0)
    band: str = "market"


class Cart(Document):
    """Anonymous cart identified by the value of the cart cookie."""

    cart_id: Indexed(str, unique=True)
    user_id: Optional[PydanticObjectId] = None
    lines: list[CartLine] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "carts"

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)
