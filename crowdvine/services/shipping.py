"""Shipping cost per bottle, derived from the pallet freight cost."""

from dataclasses import dataclass
from typing import Any, Iterable


@dataclass
class ShippingCostBreakdown:
    pallet_cost_cents: int
    cost_per_bottle_cents: int
    total_shipping_cost_cents: int
    bottles: int

    @property
    def pallet_cost_sek(self) -> float:
        return self.pallet_cost_cents / 100

    @property
    def cost_per_bottle_sek(self) -> float:
        return self.cost_per_bottle_cents / 100

    @property
    def total_shipping_cost_sek(self) -> float:
        return self.total_shipping_cost_cents / 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "pallet_cost_cents": self.pallet_cost_cents,
            "pallet_cost_sek": self.pallet_cost_sek,
            "cost_per_bottle_cents": self.cost_per_bottle_cents,
            "cost_per_bottle_sek": self.cost_per_bottle_sek,
            "total_shipping_cost_cents": self.total_shipping_cost_cents,
            "total_shipping_cost_sek": self.total_shipping_cost_sek,
            "bottles": self.bottles,
        }


def shipping_cost_per_bottle(pallet_cost_cents: int, bottle_capacity: int) -> int:
    """Pallet cost spread over its full capacity, in öre."""
    if bottle_capacity <= 0:
        return 0
    return round(pallet_cost_cents / bottle_capacity)


def shipping_cost_breakdown(
    pallet_cost_cents: int, bottle_capacity: int, bottles: int
) -> ShippingCostBreakdown:
    per_bottle = shipping_cost_per_bottle(pallet_cost_cents, bottle_capacity)
    return ShippingCostBreakdown(
        pallet_cost_cents=pallet_cost_cents,
        cost_per_bottle_cents=per_bottle,
        total_shipping_cost_cents=per_bottle * bottles,
        bottles=bottles,
    )


def cart_shipping_cost(lines: Iterable[Any], pallet: Any | None) -> ShippingCostBreakdown | None:
    """Shipping for cart lines on a pallet, or None when no pallet is chosen."""
    if pallet is None:
        return None
    bottles = sum(line.quantity for line in lines)
    return shipping_cost_breakdown(pallet.cost_cents, pallet.bottle_capacity, bottles)


def format_shipping_cost(cost_cents: int) -> str:
    return f"{cost_cents / 100:.2f} SEK"
