"""Tests for consumer and B2B price arithmetic."""

from types import SimpleNamespace

import pytest

from crowdvine.services.pricing import (
    PricingError,
    apply_bulk_margin,
    calculate_b2b_price_breakdown,
    calculate_b2b_price_excl_vat,
    calculate_b2b_price_with_discount,
    calculate_percentages,
    calculate_price_breakdown,
    calculate_price_cents,
    ceil2,
    cost_in_sek,
    format_currency,
    format_price_cents,
)


class TestConsumerPrice:
    """Gross-margin consumer price: P = C / (1 - M), then VAT."""

    def test_cost_in_sek_adds_alcohol_tax(self):
        assert cost_in_sek(10, 11.5, 2219) == pytest.approx(137.19)

    def test_price_with_vat(self):
        # C = 137.19, P = 152.433, F = 190.54
        assert calculate_price_cents(10, 11.5, 2219, 10, vat_rate=0.25) == 19054

    def test_price_without_vat(self):
        assert calculate_price_cents(10, 11.5, 2219, 10, includes_vat=False, vat_rate=0.25) == 15243

    def test_zero_margin_is_cost_plus_vat(self):
        assert calculate_price_cents(8, 10, 0, 0, vat_rate=0.25) == 10000

    @pytest.mark.parametrize("margin", [-1, 100, 150])
    def test_margin_out_of_range(self, margin):
        with pytest.raises(PricingError):
            calculate_price_cents(10, 11.5, 2219, margin)

    def test_non_positive_exchange_rate(self):
        with pytest.raises(PricingError):
            calculate_price_cents(10, 0, 2219, 10)

    def test_bulk_margin_reprices_every_wine(self):
        wines = [
            SimpleNamespace(
                cost_amount=8, exchange_rate=10, alcohol_tax_cents=0,
                margin_percentage=10, price_includes_vat=False, base_price_cents=0,
            ),
            SimpleNamespace(
                cost_amount=16, exchange_rate=10, alcohol_tax_cents=0,
                margin_percentage=30, price_includes_vat=False, base_price_cents=0,
            ),
        ]
        updated = apply_bulk_margin(wines, 20)
        assert [w.margin_percentage for w in updated] == [20, 20]
        assert [w.base_price_cents for w in updated] == [10000, 20000]

    def test_bulk_margin_rejects_full_margin(self):
        with pytest.raises(PricingError):
            apply_bulk_margin([], 100)


class TestB2BPrice:
    def test_b2b_price_includes_shipping(self):
        price = calculate_b2b_price_excl_vat(10, 11.5, 2219, 20, shipping_per_bottle_sek=5)
        assert price == pytest.approx(177.7375)

    def test_member_discount_only_reduces_margin(self):
        # 200 at 20% margin: 160 cost+tax, 40 margin; half the margin off
        assert calculate_b2b_price_with_discount(200, 20, 50) == 180.0

    def test_no_discount_returns_price_unchanged(self):
        assert calculate_b2b_price_with_discount(177.74, 20, 0) == 177.74

    def test_b2b_breakdown_parts_sum_to_price(self):
        price = calculate_b2b_price_excl_vat(10, 11.5, 2219, 20, shipping_per_bottle_sek=5)
        breakdown = calculate_b2b_price_breakdown(price, 10, 11.5, 2219, 20, shipping_per_bottle_sek=5)
        assert breakdown.vat == 0
        assert breakdown.shipping == 5
        parts = breakdown.cost + breakdown.alcohol_tax + breakdown.margin + breakdown.shipping
        assert parts == pytest.approx(breakdown.total, abs=0.011)
        assert breakdown.total == ceil2(price)


class TestBreakdown:
    def test_consumer_breakdown_works_back_from_displayed_price(self):
        breakdown = calculate_price_breakdown(19054, 2219, 10, vat_rate=0.25)
        assert breakdown.alcohol_tax == 22.19
        assert breakdown.vat == pytest.approx(38.2)
        assert breakdown.total == pytest.approx(191, abs=0.011)
        assert breakdown.original_margin_percentage == 10

    def test_member_discount_scales_margin_percentage(self):
        breakdown = calculate_price_breakdown(19054, 2219, 10, member_discount_percent=50)
        assert breakdown.margin_percentage == pytest.approx(5)

    def test_percentages_of_empty_breakdown(self):
        breakdown = calculate_price_breakdown(0, 0, 0, vat_rate=0.25)
        assert calculate_percentages(breakdown) == {
            "cost": 0.0, "alcohol_tax": 0.0, "shipping": 0.0, "margin": 0.0, "vat": 0.0,
        }


class TestFormatting:
    def test_ceil2_ignores_float_noise(self):
        assert ceil2(0.1 + 0.2) == 0.3
        assert ceil2(1.001) == 1.01

    def test_currency_rounds_up_and_groups_thousands(self):
        assert format_currency(1235.2) == "1 236 kr"
        assert format_currency(999) == "999 kr"

    def test_price_cents(self):
        assert format_price_cents(19054) == "191 kr"
