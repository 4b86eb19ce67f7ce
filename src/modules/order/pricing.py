"""Order pricing in integer minor units.

Fractional cents only ever arise from multiplying by litres, distance or a
percentage; each such product is rounded half-up once, and the total is the
plain integer sum of its parts.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from src.config import settings


@dataclass(frozen=True)
class PriceBreakdown:
    fuel_cost_cents: int
    delivery_fee_cents: int
    service_fee_cents: int

    @property
    def total_cents(self) -> int:
        return self.fuel_cost_cents + self.delivery_fee_cents + self.service_fee_cents


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def fuel_cost_cents(litres: Decimal, price_per_litre_cents: int) -> int:
    return _round_half_up(Decimal(litres) * price_per_litre_cents)


def delivery_fee_cents(distance_km: float, base_cents: int, per_km_cents: int) -> int:
    return base_cents + _round_half_up(Decimal(str(distance_km)) * per_km_cents)


def service_fee_cents(fuel_cents: int, percent: float, minimum_cents: int) -> int:
    fee = _round_half_up(Decimal(fuel_cents) * Decimal(str(percent)) / 100)
    return max(fee, minimum_cents)


def quote_price(
    litres: Decimal,
    price_per_litre_cents: int,
    distance_km: float,
    *,
    base_delivery_fee_cents: int | None = None,
    delivery_fee_per_km_cents: int | None = None,
    service_fee_percent: float | None = None,
    service_fee_min_cents: int | None = None,
) -> PriceBreakdown:
    """Price an order from its inputs; unset tariffs come from settings."""
    if litres <= 0:
        raise ValueError("litres must be positive")

    fuel = fuel_cost_cents(litres, price_per_litre_cents)
    delivery = delivery_fee_cents(
        distance_km,
        settings.base_delivery_fee_cents if base_delivery_fee_cents is None else base_delivery_fee_cents,
        settings.delivery_fee_per_km_cents if delivery_fee_per_km_cents is None else delivery_fee_per_km_cents,
    )
    service = service_fee_cents(
        fuel,
        settings.service_fee_percent if service_fee_percent is None else service_fee_percent,
        settings.service_fee_min_cents if service_fee_min_cents is None else service_fee_min_cents,
    )
    return PriceBreakdown(fuel, delivery, service)
