"""Tests for order pricing in integer minor units."""

from decimal import Decimal

import pytest

from src.modules.order.pricing import (
    PriceBreakdown,
    delivery_fee_cents,
    fuel_cost_cents,
    quote_price,
    service_fee_cents,
)


class TestQuotePrice:
    def test_reference_order(self):
        breakdown = quote_price(
            Decimal("500"),
            2100,
            12.4,
            base_delivery_fee_cents=35000,
            delivery_fee_per_km_cents=0,
            service_fee_percent=2.1,
            service_fee_min_cents=0,
        )
        assert breakdown.fuel_cost_cents == 1_050_000
        assert breakdown.delivery_fee_cents == 35_000
        assert breakdown.service_fee_cents == 22_050
        assert breakdown.total_cents == 1_107_050

    def test_total_is_sum_of_parts(self):
        breakdown = quote_price(
            Decimal("37.55"),
            2199,
            7.3,
            base_delivery_fee_cents=25000,
            delivery_fee_per_km_cents=450,
            service_fee_percent=3.3,
            service_fee_min_cents=0,
        )
        assert breakdown.total_cents == (
            breakdown.fuel_cost_cents
            + breakdown.delivery_fee_cents
            + breakdown.service_fee_cents
        )

    def test_defaults_come_from_settings(self, monkeypatch):
        from src.config import settings

        monkeypatch.setattr(settings, "base_delivery_fee_cents", 1000)
        monkeypatch.setattr(settings, "delivery_fee_per_km_cents", 0)
        monkeypatch.setattr(settings, "service_fee_percent", 10.0)
        monkeypatch.setattr(settings, "service_fee_min_cents", 0)

        breakdown = quote_price(Decimal("10"), 2000, 3.0)
        assert breakdown == PriceBreakdown(20_000, 1_000, 2_000)

    @pytest.mark.parametrize("litres", [Decimal("0"), Decimal("-5")])
    def test_non_positive_litres_rejected(self, litres):
        with pytest.raises(ValueError):
            quote_price(litres, 2100, 1.0)


class TestRounding:
    def test_fuel_cost_rounds_half_up(self):
        # 0.5 L at 21 cents = 10.5 cents
        assert fuel_cost_cents(Decimal("0.5"), 21) == 11

    def test_fuel_cost_rounds_down_below_half(self):
        assert fuel_cost_cents(Decimal("0.49"), 21) == 10

    def test_distance_fee_rounds_once(self):
        # 2.5 km at 101 cents/km = 252.5 cents
        assert delivery_fee_cents(2.5, 1000, 101) == 1253

    def test_service_fee_minimum_applies(self):
        assert service_fee_cents(1000, 5.0, 10_000) == 10_000

    def test_service_fee_above_minimum(self):
        assert service_fee_cents(1_000_000, 5.0, 10_000) == 50_000

    def test_service_fee_half_cent_rounds_up(self):
        # 5% of 1 010 cents = 50.5 cents
        assert service_fee_cents(1010, 5.0, 0) == 51
