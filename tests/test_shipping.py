"""Tests for pallet shipping cost per bottle."""

from types import SimpleNamespace

from crowdvine.services.shipping import (
    cart_shipping_cost,
    format_shipping_cost,
    shipping_cost_breakdown,
    shipping_cost_per_bottle,
)


def test_cost_spread_over_capacity():
    assert shipping_cost_per_bottle(500000, 720) == 694


def test_zero_capacity_costs_nothing():
    assert shipping_cost_per_bottle(500000, 0) == 0


def test_breakdown_totals():
    breakdown = shipping_cost_breakdown(500000, 720, 12)
    assert breakdown.total_shipping_cost_cents == 694 * 12
    assert breakdown.cost_per_bottle_sek == 6.94
    assert breakdown.to_dict()["bottles"] == 12


def test_cart_without_pallet_has_no_shipping():
    assert cart_shipping_cost([SimpleNamespace(quantity=6)], None) is None


def test_cart_shipping_counts_bottles_across_lines():
    pallet = SimpleNamespace(cost_cents=72000, bottle_capacity=720)
    lines = [SimpleNamespace(quantity=6), SimpleNamespace(quantity=12)]
    breakdown = cart_shipping_cost(lines, pallet)
    assert breakdown.bottles == 18
    assert breakdown.total_shipping_cost_cents == 1800


def test_format_shipping_cost():
    assert format_shipping_cost(694) == "6.94 SEK"
