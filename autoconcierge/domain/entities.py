"""
Domain value objects.

All are immutable dataclasses; validation lives on the object that owns
the data so the pricing engine and orchestrator only see valid input.
Money is always ``Decimal``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from .enums import MileageInterval, PriceSource, ServiceType
from .errors import ValidationError

MIN_VEHICLE_YEAR = 1994
MAX_MILEAGE = 500_000

_TIME_SLOT = re.compile(
    r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9](-([0-1]?[0-9]|2[0-3]):[0-5][0-9])?$"
)


# ── Vehicle ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Vehicle:
    brand: str
    model: str
    year: int
    mileage: int

    def validate(self, current_year: int) -> None:
        """Raise ``ValidationError`` naming the first violated constraint."""
        if not self.brand or not self.brand.strip():
            raise ValidationError("Brand is required")
        if not self.model or not self.model.strip():
            raise ValidationError("Model is required")
        if not MIN_VEHICLE_YEAR <= self.year <= current_year + 1:
            raise ValidationError(
                f"Year must be between {MIN_VEHICLE_YEAR} and {current_year + 1}"
            )
        if not 0 <= self.mileage <= MAX_MILEAGE:
            raise ValidationError("Mileage must be between 0 and 500,000 km")

    def age(self, current_year: int) -> int:
        return current_year - self.year


# ── Booking input ─────────────────────────────────────────────────────


def validate_time_slot(slot: str) -> None:
    if not _TIME_SLOT.match(slot or ""):
        raise ValidationError(
            "Invalid time slot format. Expected HH:MM or HH:MM-HH:MM"
        )


@dataclass(frozen=True)
class PickupDetails:
    date: date
    time_slot: str
    address: str
    city: str
    postal_code: str

    def validate(self, today: date) -> None:
        if self.date < today:
            raise ValidationError("Pickup date must not be in the past")
        validate_time_slot(self.time_slot)
        if not self.address.strip():
            raise ValidationError("Pickup address is required")


@dataclass(frozen=True)
class DeliveryDetails:
    date: Optional[date] = None
    time_slot: Optional[str] = None

    def validate(self, pickup: PickupDetails) -> None:
        if self.date is not None and self.date < pickup.date:
            raise ValidationError("Delivery date must not be before pickup date")
        if self.time_slot is not None:
            validate_time_slot(self.time_slot)


# ── Jockey handover ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Handover:
    """Documentation collected when a vehicle changes hands."""

    photos: tuple[str, ...] = ()
    signature: Optional[str] = None
    checklist: dict[str, bool] = field(default_factory=dict)
    notes: Optional[str] = None

    def missing_items(self) -> list[str]:
        missing = []
        if not self.photos:
            missing.append("photos")
        if not self.signature:
            missing.append("signature")
        if not self.checklist or not all(self.checklist.values()):
            missing.append("checklist")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_items()

    def as_dict(self) -> dict:
        return {
            "photos": list(self.photos),
            "signature": self.signature,
            "checklist": dict(self.checklist),
            "notes": self.notes,
        }


@dataclass(frozen=True)
class TransitionPayload:
    """Event-specific data accompanying a lifecycle transition."""

    jockey_id: Optional[int] = None
    scheduled_time: Optional[datetime] = None
    handover: Optional[Handover] = None
    reason: Optional[str] = None


# ── Pricing ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PriceMatrixEntry:
    brand: str
    model: str
    year_from: int
    year_to: int
    inspection_30k: Optional[Decimal] = None
    inspection_60k: Optional[Decimal] = None
    inspection_90k: Optional[Decimal] = None
    inspection_120k: Optional[Decimal] = None
    oil_service: Optional[Decimal] = None
    brake_service_front: Optional[Decimal] = None
    brake_service_rear: Optional[Decimal] = None
    tuv: Optional[Decimal] = None
    climate_service: Optional[Decimal] = None

    def covers(self, year: int) -> bool:
        return self.year_from <= year <= self.year_to

    def overlaps(self, other: "PriceMatrixEntry") -> bool:
        return (
            self.brand == other.brand
            and self.model == other.model
            and self.year_from <= other.year_to
            and other.year_from <= self.year_to
        )

    def price_for(
        self, service_type: ServiceType, interval: Optional[MileageInterval]
    ) -> Optional[Decimal]:
        """Price column for *service_type*; ``None`` when not offered."""
        if service_type.is_inspection:
            return getattr(self, interval.column)
        return getattr(self, service_type.info.column)


@dataclass(frozen=True)
class PriceCalculationResult:
    service_type: ServiceType
    base_price: Decimal
    age_multiplier: Decimal
    final_price: Decimal
    price_source: PriceSource
    mileage_interval: Optional[MileageInterval] = None

    def as_dict(self) -> dict:
        """JSON-safe breakdown, stored on the booking for auditing."""
        return {
            "serviceType": self.service_type.value,
            "basePrice": str(self.base_price),
            "ageMultiplier": str(self.age_multiplier),
            "finalPrice": str(self.final_price),
            "priceSource": self.price_source.value,
            "mileageInterval": (
                self.mileage_interval.value if self.mileage_interval else None
            ),
        }
