"""
Fixed-Price Calculation Engine  (Strategy Pattern)
==================================================

Formula
-------
Final_Price = round_half_up(Base_Price x Age_Multiplier, 0.01)

* **Base_Price** comes from the first source strategy that yields a price:
  exact (brand, model, year range) -> brand average -> default table.
* **Inspection** prices are tiered by mileage:
  ``< 45k -> 30k``, ``< 75k -> 60k``, ``< 105k -> 90k``, else ``120k+``.
* **Age_Multiplier** = 1.0 up to 10 years, 1.1 up to 15, 1.2 beyond.

The engine never mutates state and never caches: odometer readings change
between bookings, so every request is recomputed from the matrix.

Complexity: O(1) matrix look-ups per price; brand average is O(models).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Protocol, Union

from .entities import PriceCalculationResult, PriceMatrixEntry, Vehicle
from .enums import DEFAULT_PRICES, MileageInterval, PriceSource, ServiceType
from .errors import PricingUnavailableError, ValidationError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# (exclusive upper bound, tier); anything above the last bound is 120k+
_MILEAGE_TIERS: tuple[tuple[int, MileageInterval], ...] = (
    (45_000, MileageInterval.KM_30K),
    (75_000, MileageInterval.KM_60K),
    (105_000, MileageInterval.KM_90K),
)


def round_half_up(amount: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def mileage_interval(mileage: int) -> MileageInterval:
    for upper, tier in _MILEAGE_TIERS:
        if mileage < upper:
            return tier
    return MileageInterval.KM_120K_PLUS


def age_multiplier(age: int) -> Decimal:
    if age <= 10:
        return Decimal("1.0")
    if age <= 15:
        return Decimal("1.1")
    return Decimal("1.2")


def parse_service_type(value: Union[str, ServiceType]) -> ServiceType:
    try:
        return ServiceType(value)
    except ValueError:
        raise ValidationError(f"Unknown service type: {value}") from None


class PriceMatrixSource(Protocol):
    """Read-only rate table look-ups the engine depends on."""

    async def find_exact(
        self, brand: str, model: str, year: int
    ) -> Optional[PriceMatrixEntry]: ...

    async def find_by_brand(self, brand: str) -> list[PriceMatrixEntry]: ...


# ── Strategy hierarchy ────────────────────────────────────────────────


class PriceSourceStrategy(ABC):
    source: PriceSource

    @abstractmethod
    async def base_price(
        self,
        vehicle: Vehicle,
        service_type: ServiceType,
        interval: Optional[MileageInterval],
    ) -> Optional[Decimal]: ...


class ExactMatchPricing(PriceSourceStrategy):
    source = PriceSource.EXACT

    def __init__(self, matrix: PriceMatrixSource):
        self.matrix = matrix

    async def base_price(self, vehicle, service_type, interval):
        entry = await self.matrix.find_exact(vehicle.brand, vehicle.model, vehicle.year)
        if entry is None:
            return None
        return entry.price_for(service_type, interval)


class BrandAveragePricing(PriceSourceStrategy):
    """Mean of the same price column over every known model of the brand."""

    source = PriceSource.FALLBACK_BRAND

    def __init__(self, matrix: PriceMatrixSource):
        self.matrix = matrix

    async def base_price(self, vehicle, service_type, interval):
        entries = await self.matrix.find_by_brand(vehicle.brand)
        prices = [
            price
            for price in (e.price_for(service_type, interval) for e in entries)
            if price is not None
        ]
        if not prices:
            return None
        return round_half_up(sum(prices, Decimal("0")) / len(prices))


class DefaultTablePricing(PriceSourceStrategy):
    source = PriceSource.FALLBACK_DEFAULT

    def __init__(self, defaults: dict[ServiceType, Decimal] = DEFAULT_PRICES):
        self.defaults = defaults

    async def base_price(self, vehicle, service_type, interval):
        try:
            return self.defaults[service_type]
        except KeyError:
            raise PricingUnavailableError(
                f"No default price configured for {service_type.value}"
            ) from None


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the booking orchestrator and the pricing routes."""

    def __init__(
        self,
        matrix: PriceMatrixSource,
        current_year: Optional[int] = None,
        defaults: dict[ServiceType, Decimal] = DEFAULT_PRICES,
    ):
        self._current_year = current_year
        self.strategies: list[PriceSourceStrategy] = [
            ExactMatchPricing(matrix),
            BrandAveragePricing(matrix),
            DefaultTablePricing(defaults),
        ]

    @property
    def current_year(self) -> int:
        return self._current_year or date.today().year

    async def calculate_price(
        self, vehicle: Vehicle, service_type: Union[str, ServiceType]
    ) -> PriceCalculationResult:
        service = parse_service_type(service_type)
        year = self.current_year
        vehicle.validate(year)

        interval = mileage_interval(vehicle.mileage) if service.is_inspection else None
        for strategy in self.strategies:
            base = await strategy.base_price(vehicle, service, interval)
            if base is not None:
                break
        else:
            raise PricingUnavailableError(
                f"No price source produced a price for {service.value}"
            )

        if strategy.source is not PriceSource.EXACT:
            logger.info(
                "Price for %s %s (%d) %s taken from %s",
                vehicle.brand, vehicle.model, vehicle.year,
                service.value, strategy.source.value,
            )

        multiplier = age_multiplier(vehicle.age(year))
        return PriceCalculationResult(
            service_type=service,
            base_price=round_half_up(base),
            age_multiplier=multiplier,
            final_price=round_half_up(base * multiplier),
            price_source=strategy.source,
            mileage_interval=interval,
        )

    async def quote(
        self, vehicle: Vehicle, service_types: Iterable[Union[str, ServiceType]]
    ) -> list[PriceCalculationResult]:
        return [await self.calculate_price(vehicle, s) for s in service_types]

    async def available_services(self, vehicle: Vehicle) -> list[PriceCalculationResult]:
        """Every service in the catalogue priced for *vehicle*."""
        return await self.quote(vehicle, list(ServiceType))
