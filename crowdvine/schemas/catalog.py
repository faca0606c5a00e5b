"""Pydantic schemas for producers, producer groups and wines."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from crowdvine.models.wine import WineColor
from crowdvine.schemas.common import DocumentResponse, object_id_str


class ProducerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    region: str | None = Field(None, max_length=255)
    country_code: str | None = Field(None, min_length=2, max_length=2)
    address_street: str | None = Field(None, max_length=255)
    address_postcode: str | None = Field(None, max_length=20)
    address_city: str | None = Field(None, max_length=255)
    lat: float | None = Field(None, ge=-90, le=90)
    lon: float | None = Field(None, ge=-180, le=180)
    pickup_zone_id: str | None = None
    logo_url: str | None = Field(None, max_length=1000)
    is_active: bool = True


class ProducerCreate(ProducerBase):
    handle: str | None = Field(None, max_length=100, description="Generated from the name when empty")


class ProducerUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    handle: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=5000)
    region: str | None = Field(None, max_length=255)
    country_code: str | None = Field(None, min_length=2, max_length=2)
    address_street: str | None = Field(None, max_length=255)
    address_postcode: str | None = Field(None, max_length=20)
    address_city: str | None = Field(None, max_length=255)
    lat: float | None = Field(None, ge=-90, le=90)
    lon: float | None = Field(None, ge=-180, le=180)
    pickup_zone_id: str | None = None
    logo_url: str | None = Field(None, max_length=1000)
    is_active: bool | None = None


class ProducerResponse(DocumentResponse, ProducerBase):
    handle: str
    created_at: datetime
    updated_at: datetime

    @field_validator("pickup_zone_id", mode="before")
    @classmethod
    def convert_zone_id(cls, v):
        return object_id_str(v)


class ProducerGroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    producer_ids: list[str] = Field(default_factory=list)


class ProducerGroupUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    producer_ids: list[str] | None = None


class ProducerGroupResponse(DocumentResponse):
    name: str
    description: str | None = None
    producer_ids: list[str] = []
    created_at: datetime

    @field_validator("producer_ids", mode="before")
    @classmethod
    def convert_ids(cls, v):
        return [object_id_str(x) for x in v or []]


class WineBase(BaseModel):
    wine_name: str = Field(..., min_length=1, max_length=255)
    vintage: str = Field(..., min_length=1, max_length=10)
    grape_varieties: str | None = Field(None, max_length=500)
    color: WineColor | None = None
    producer_id: str | None = None
    label_image_path: str | None = Field(None, max_length=1000)
    description: str | None = Field(None, max_length=10000)
    description_html: str | None = Field(None, max_length=20000)

    cost_currency: str = Field("EUR", min_length=3, max_length=3)
    cost_amount: float = Field(0.0, ge=0)
    exchange_rate: float = Field(1.0, gt=0)
    alcohol_tax_cents: int = Field(2219, ge=0)
    price_includes_vat: bool = True
    margin_percentage: float = Field(10.0, ge=0, lt=100)

    b2b_margin_percentage: float | None = Field(None, ge=0, lt=100)
    b2b_stock: int = Field(0, ge=0)
    is_live: bool = True


class WineCreate(WineBase):
    handle: str | None = Field(None, max_length=100, description="Generated from name and vintage when empty")


class WineUpdate(BaseModel):
    handle: str | None = Field(None, min_length=1, max_length=100)
    wine_name: str | None = Field(None, min_length=1, max_length=255)
    vintage: str | None = Field(None, min_length=1, max_length=10)
    grape_varieties: str | None = Field(None, max_length=500)
    color: WineColor | None = None
    producer_id: str | None = None
    label_image_path: str | None = Field(None, max_length=1000)
    description: str | None = Field(None, max_length=10000)
    description_html: str | None = Field(None, max_length=20000)

    cost_currency: str | None = Field(None, min_length=3, max_length=3)
    cost_amount: float | None = Field(None, ge=0)
    exchange_rate: float | None = Field(None, gt=0)
    alcohol_tax_cents: int | None = Field(None, ge=0)
    price_includes_vat: bool | None = None
    margin_percentage: float | None = Field(None, ge=0, lt=100)

    b2b_margin_percentage: float | None = Field(None, ge=0, lt=100)
    b2b_stock: int | None = Field(None, ge=0)
    is_live: bool | None = None


class WineResponse(DocumentResponse, WineBase):
    handle: str
    base_price_cents: int
    created_at: datetime
    updated_at: datetime

    @field_validator("producer_id", mode="before")
    @classmethod
    def convert_producer_id(cls, v):
        return object_id_str(v)


class BulkMarginUpdate(BaseModel):
    margin_percentage: float = Field(..., ge=0, lt=100)
    wine_ids: list[str] | None = Field(None, description="All wines when omitted")
