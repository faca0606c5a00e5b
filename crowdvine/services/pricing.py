"""Price arithmetic for consumer and B2B prices.

All consumer prices use a gross margin: the margin is a share of the
price ex VAT, so P = C / (1 - M). Amounts are SEK unless the name ends
in _cents (öre).
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from crowdvine.config import settings

logger = logging.getLogger(__name__)


class PricingError(ValueError):
    """Raised for pricing inputs that cannot produce a price."""


def ceil2(value: float) -> float:
    """Round up to two decimals, ignoring float noise below 1e-6 öre."""
    return math.ceil(round(value * 100, 6)) / 100


def cost_in_sek(cost_amount: float, exchange_rate: float, alcohol_tax_cents: int) -> float:
    """Bottle cost converted to SEK including alcohol tax."""
    return cost_amount * exchange_rate + alcohol_tax_cents / 100


def calculate_price_cents(
    cost_amount: float,
    exchange_rate: float,
    alcohol_tax_cents: int,
    margin_percentage: float,
    includes_vat: bool = True,
    vat_rate: float | None = None,
) -> int:
    """Consumer price in öre.

    C = cost * rate + tax, P = C / (1 - margin), F = P * (1 + VAT).
    """
    if margin_percentage < 0 or margin_percentage >= 100:
        raise PricingError(f"Margin must be between 0 and 100, got {margin_percentage}")
    if cost_amount < 0 or exchange_rate <= 0:
        raise PricingError("Cost must be non-negative and exchange rate positive")

    vat = settings.vat_rate if vat_rate is None else vat_rate
    price_ex_vat = cost_in_sek(cost_amount, exchange_rate, alcohol_tax_cents) / (
        1 - margin_percentage / 100
    )
    final_price = price_ex_vat * (1 + vat) if includes_vat else price_ex_vat
    return round(final_price * 100)


def price_wine(wine: Any) -> int:
    """Recompute a wine's base price from its stored pricing inputs."""
    return calculate_price_cents(
        wine.cost_amount,
        wine.exchange_rate,
        wine.alcohol_tax_cents,
        wine.margin_percentage,
        includes_vat=wine.price_includes_vat,
    )


def apply_bulk_margin(wines: Iterable[Any], margin_percentage: float) -> list[Any]:
    """Set a new margin on each wine and recompute its price in place."""
    if margin_percentage < 0 or margin_percentage >= 100:
        raise PricingError(f"Margin must be between 0 and 100, got {margin_percentage}")
    updated = []
    for wine in wines:
        wine.margin_percentage = margin_percentage
        wine.base_price_cents = price_wine(wine)
        updated.append(wine)
    return updated


def calculate_b2b_price_excl_vat(
    cost_amount: float,
    exchange_rate: float,
    alcohol_tax_cents: int,
    b2b_margin_percentage: float,
    shipping_per_bottle_sek: float = 0,
) -> float:
    """B2B price ex VAT: (cost + tax + shipping) / (1 - b2b_margin)."""
    if b2b_margin_percentage < 0 or b2b_margin_percentage >= 100:
        raise PricingError(f"B2B margin must be between 0 and 100, got {b2b_margin_percentage}")
    base = cost_in_sek(cost_amount, exchange_rate, alcohol_tax_cents) + shipping_per_bottle_sek
    return base / (1 - b2b_margin_percentage / 100)


def calculate_b2b_price_with_discount(
    b2b_price_excl_vat: float,
    b2b_margin_percentage: float,
    member_discount_percent: float = 0,
) -> float:
    """Apply a member discount to the margin part of a B2B price only."""
    if member_discount_percent <= 0:
        return b2b_price_excl_vat

    cost_plus_tax = b2b_price_excl_vat * (1 - b2b_margin_percentage / 100)
    margin = b2b_price_excl_vat - cost_plus_tax
    discounted_margin = margin * (1 - member_discount_percent / 100)
    return ceil2(cost_plus_tax + discounted_margin)


@dataclass
class PriceBreakdown:
    cost: float
    alcohol_tax: float
    margin: float
    vat: float
    total: float
    margin_percentage: float
    original_margin_percentage: float
    shipping: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _reconcile(breakdown: PriceBreakdown, expected_total: float) -> PriceBreakdown:
    """Push any rounding difference into the cost so the parts sum to the total."""
    parts = breakdown.alcohol_tax + breakdown.margin + breakdown.vat + (breakdown.shipping or 0)
    calculated = ceil2(breakdown.cost + parts)
    diff = expected_total - calculated
    if abs(diff) >= 0.01:
        breakdown.cost = ceil2(breakdown.cost + diff)
        calculated = expected_total
    breakdown.total = calculated
    return breakdown


def calculate_price_breakdown(
    base_price_cents: int,
    alcohol_tax_cents: int,
    margin_percentage: float,
    member_discount_percent: float = 0,
    vat_rate: float | None = None,
) -> PriceBreakdown:
    """Split a consumer price into cost, tax, margin and VAT.

    Works backwards from the displayed price (whole SEK, rounded up).
    """
    vat_rate = settings.vat_rate if vat_rate is None else vat_rate
    total_price = math.ceil(base_price_cents / 100)
    margin_percent = margin_percentage * (1 - member_discount_percent / 100)
    alcohol_tax = ceil2(alcohol_tax_cents / 100)

    price_before_vat = total_price / (1 + vat_rate)
    vat = ceil2(total_price - price_before_vat)
    cost = ceil2((price_before_vat - alcohol_tax) / (1 + margin_percent / 100))
    margin = ceil2(cost * margin_percent / 100)

    breakdown = PriceBreakdown(
        cost=cost,
        alcohol_tax=alcohol_tax,
        margin=margin,
        vat=vat,
        total=0,
        margin_percentage=margin_percent,
        original_margin_percentage=margin_percentage,
    )
    return _reconcile(breakdown, float(total_price))


def breakdown_for_wine(wine: Any, member_discount_percent: float = 0) -> PriceBreakdown:
    return calculate_price_breakdown(
        wine.base_price_cents,
        wine.alcohol_tax_cents,
        wine.margin_percentage,
        member_discount_percent,
    )


def calculate_b2b_price_breakdown(
    b2b_price_excl_vat: float,
    cost_amount: float,
    exchange_rate: float,
    alcohol_tax_cents: int,
    b2b_margin_percentage: float,
    member_discount_percent: float = 0,
    shipping_per_bottle_sek: float = 0,
) -> PriceBreakdown:
    """Split a B2B price ex VAT into cost, tax, shipping and margin."""
    alcohol_tax = ceil2(alcohol_tax_cents / 100)
    cost = ceil2(cost_amount * exchange_rate)
    margin = ceil2(b2b_price_excl_vat - cost - alcohol_tax - shipping_per_bottle_sek)

    breakdown = PriceBreakdown(
        cost=cost,
        alcohol_tax=alcohol_tax,
        margin=margin,
        vat=0,
        total=0,
        margin_percentage=b2b_margin_percentage * (1 - member_discount_percent / 100),
        original_margin_percentage=b2b_margin_percentage,
        shipping=shipping_per_bottle_sek if shipping_per_bottle_sek > 0 else None,
    )
    return _reconcile(breakdown, ceil2(b2b_price_excl_vat))


def calculate_percentages(breakdown: PriceBreakdown) -> dict[str, float]:
    """Share of the total for each component, in percent."""
    total = breakdown.total
    if not total:
        return {"cost": 0.0, "alcohol_tax": 0.0, "shipping": 0.0, "margin": 0.0, "vat": 0.0}
    return {
        "cost": breakdown.cost / total * 100,
        "alcohol_tax": breakdown.alcohol_tax / total * 100,
        "shipping": (breakdown.shipping / total * 100) if breakdown.shipping else 0.0,
        "margin": breakdown.margin / total * 100,
        "vat": breakdown.vat / total * 100,
    }


def format_currency(amount: float) -> str:
    """Whole kronor rounded up, Swedish digit grouping: 1235.2 -> '1 236 kr'."""
    rounded = math.ceil(round(amount, 6))
    grouped = f"{rounded:,}".replace(",", " ")
    return f"{grouped} kr"


def format_price_cents(cents: int) -> str:
    return format_currency(cents / 100)
