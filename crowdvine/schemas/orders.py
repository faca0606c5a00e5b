"""Pydantic schemas for carts, checkout, reservations and B2B orders."""

from pydantic import BaseModel, Field

from crowdvine.models.reservation import DecisionStatus


class AddressIn(BaseModel):
    full_name: str | None = Field(None, max_length=255)
    street: str | None = Field(None, max_length=255)
    postcode: str | None = Field(None, max_length=20)
    city: str | None = Field(None, max_length=255)
    country_code: str | None = Field(None, min_length=2, max_length=2)
    phone: str | None = Field(None, max_length=50)
    lat: float | None = Field(None, ge=-90, le=90)
    lon: float | None = Field(None, ge=-180, le=180)


class CartAdd(BaseModel):
    wine_id: str = Field(..., description="Wine id, optionally with the variant suffix")
    quantity: int = Field(1, gt=0, le=1000)


class CartLineUpdate(BaseModel):
    quantity: int = Field(..., le=1000, description="Zero or less removes the line")


class CheckoutRequest(BaseModel):
    address: AddressIn | None = None
    pallet_id: str | None = None
    discount_code: str | None = Field(None, max_length=50)


class ZonePreviewRequest(BaseModel):
    address: AddressIn | None = None


class ItemDecisionIn(BaseModel):
    item_id: str
    approved_quantity: int = Field(..., ge=0)
    decision: DecisionStatus


class ProducerDecisionRequest(BaseModel):
    decisions: list[ItemDecisionIn] = Field(..., min_length=1)


class B2BOrderLine(BaseModel):
    wine_id: str
    quantity: int = Field(..., gt=0)


class B2BOrderRequest(BaseModel):
    producer_id: str
    lines: list[B2BOrderLine] = Field(..., min_length=1)
