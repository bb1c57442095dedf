"""Pydantic request / response schemas for the REST API.

JSON field names are camelCase; Python attributes stay snake_case.  Money
fields are ``Decimal`` and serialise as strings.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from autoconcierge.domain.entities import (
    DeliveryDetails,
    Handover,
    PickupDetails,
    PriceCalculationResult,
    TransitionPayload,
    Vehicle,
)
from autoconcierge.domain.enums import (
    ActorRole,
    BookingEvent,
    BookingStatus,
    ExtensionStatus,
    MileageInterval,
    PriceSource,
    ServiceType,
)


class CamelModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


# ── Requests ──────────────────────────────────────────────────────────


class VehicleIn(CamelModel):
    brand: str
    model: str
    year: int
    mileage: int

    def to_domain(self) -> Vehicle:
        return Vehicle(
            brand=self.brand.strip(),
            model=self.model.strip(),
            year=self.year,
            mileage=self.mileage,
        )


class PriceCalculationRequest(VehicleIn):
    service_type: str = Field(..., examples=["INSPECTION", "oilService"])


class PickupIn(CamelModel):
    date: dt.date
    time_slot: str = Field(..., examples=["09:00-11:00"])
    address: str
    city: str
    postal_code: str

    def to_domain(self) -> PickupDetails:
        return PickupDetails(
            date=self.date,
            time_slot=self.time_slot,
            address=self.address,
            city=self.city,
            postal_code=self.postal_code,
        )


class DeliveryIn(CamelModel):
    date: Optional[dt.date] = None
    time_slot: Optional[str] = None

    def to_domain(self) -> DeliveryDetails:
        return DeliveryDetails(date=self.date, time_slot=self.time_slot)


class BookingCreateRequest(CamelModel):
    customer_id: int
    vehicle: VehicleIn
    service_types: list[str]
    pickup: PickupIn
    delivery: Optional[DeliveryIn] = None
    customer_notes: Optional[str] = Field(None, max_length=2000)


class HandoverIn(CamelModel):
    photos: list[str] = []
    signature: Optional[str] = None
    checklist: dict[str, bool] = {}
    notes: Optional[str] = None

    def to_domain(self) -> Handover:
        return Handover(
            photos=tuple(self.photos),
            signature=self.signature,
            checklist=dict(self.checklist),
            notes=self.notes,
        )


class StatusUpdateRequest(CamelModel):
    event: str = Field(..., examples=["assign_jockey"])
    actor_role: str = Field(..., examples=["ADMIN"])
    jockey_id: Optional[int] = None
    scheduled_time: Optional[dt.datetime] = None
    handover: Optional[HandoverIn] = None
    reason: Optional[str] = None

    def payload(self) -> TransitionPayload:
        return TransitionPayload(
            jockey_id=self.jockey_id,
            scheduled_time=self.scheduled_time,
            handover=self.handover.to_domain() if self.handover else None,
            reason=self.reason,
        )


class ExtensionCreateRequest(CamelModel):
    description: str
    amount: Decimal
    actor_role: str = ActorRole.WORKSHOP.value


class ExtensionResolveRequest(CamelModel):
    approve: bool
    actor_role: str = ActorRole.CUSTOMER.value
    reason: Optional[str] = None


class PaymentConfirmedRequest(CamelModel):
    booking_id: int


# ── Responses ─────────────────────────────────────────────────────────


class PriceCalculationResponse(CamelModel):
    service_type: ServiceType
    base_price: Decimal
    age_multiplier: float
    final_price: Decimal
    price_source: PriceSource
    mileage_interval: Optional[MileageInterval] = None

    @classmethod
    def from_result(cls, result: PriceCalculationResult) -> "PriceCalculationResponse":
        return cls(
            service_type=result.service_type,
            base_price=result.base_price,
            age_multiplier=float(result.age_multiplier),
            final_price=result.final_price,
            price_source=result.price_source,
            mileage_interval=result.mileage_interval,
        )


class ServiceCatalogItem(CamelModel):
    service_type: ServiceType
    label: str
    pricing_key: str
    description: str
    default_price: Decimal


class BookingCreatedResponse(CamelModel):
    booking_id: int
    booking_number: str
    total_price: Decimal
    status: BookingStatus


class ExtensionResponse(CamelModel):
    id: int
    booking_id: int
    description: str
    total_amount: Decimal
    status: ExtensionStatus
    decline_reason: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    approved_at: Optional[dt.datetime] = None
    declined_at: Optional[dt.datetime] = None


class BookingResponse(CamelModel):
    id: int
    booking_number: str
    customer_id: int
    vehicle_id: int
    services: list[dict[str, Any]]
    mileage_at_booking: int
    total_price: Decimal
    status: BookingStatus
    status_description: str
    pickup_date: dt.date
    pickup_time_slot: str
    pickup_address: str
    pickup_city: str
    pickup_postal_code: str
    delivery_date: Optional[dt.date] = None
    delivery_time_slot: Optional[str] = None
    jockey_id: Optional[int] = None
    customer_notes: Optional[str] = None
    paid_at: Optional[dt.datetime] = None
    version: int
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    pending_extension: Optional[ExtensionResponse] = None
    allowed_events: list[BookingEvent] = []

    @classmethod
    def from_view(cls, view) -> "BookingResponse":
        b = view.booking
        return cls(
            id=b.id,
            booking_number=b.booking_number,
            customer_id=b.customer_id,
            vehicle_id=b.vehicle_id,
            services=b.services,
            mileage_at_booking=b.mileage_at_booking,
            total_price=b.total_price,
            status=b.status,
            status_description=view.status_description,
            pickup_date=b.pickup_date,
            pickup_time_slot=b.pickup_time_slot,
            pickup_address=b.pickup_address,
            pickup_city=b.pickup_city,
            pickup_postal_code=b.pickup_postal_code,
            delivery_date=b.delivery_date,
            delivery_time_slot=b.delivery_time_slot,
            jockey_id=b.jockey_id,
            customer_notes=b.customer_notes,
            paid_at=b.paid_at,
            version=b.version,
            created_at=b.created_at,
            updated_at=b.updated_at,
            pending_extension=(
                ExtensionResponse.model_validate(view.pending_extension)
                if view.pending_extension is not None
                else None
            ),
            allowed_events=view.allowed_events,
        )


class StatusChangeResponse(CamelModel):
    from_status: Optional[BookingStatus] = None
    to_status: BookingStatus
    event: str
    actor: ActorRole
    created_at: Optional[dt.datetime] = None


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(CamelModel):
    """Body of every domain error; transition failures add the last three fields."""

    detail: str
    error: str
    current_status: Optional[str] = None
    event: Optional[str] = None
    unmet_guard: Optional[str] = None
