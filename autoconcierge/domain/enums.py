"""Domain enumerations and the display mappings derived from them."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


class _NormalisedEnum(str, enum.Enum):
    """Accepts the member value regardless of case (``"cancel"`` / ``"CANCEL"``)."""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for candidate in (value.upper(), value.lower()):
                member = cls._value2member_map_.get(candidate)
                if member is not None:
                    return member
        return None


# ── Booking lifecycle ─────────────────────────────────────────────────


class BookingStatus(_NormalisedEnum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    PICKUP_ASSIGNED = "PICKUP_ASSIGNED"
    PICKED_UP = "PICKED_UP"
    AT_WORKSHOP = "AT_WORKSHOP"
    IN_SERVICE = "IN_SERVICE"
    READY_FOR_RETURN = "READY_FOR_RETURN"
    RETURN_ASSIGNED = "RETURN_ASSIGNED"
    RETURNED = "RETURNED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def _missing_(cls, value):
        member = super()._missing_(value)
        if member is None and isinstance(value, str):
            alias = LEGACY_STATUS_ALIASES.get(value.upper())
            if alias is not None:
                return cls(alias)
        return member

    @property
    def description(self) -> str:
        return STATUS_DESCRIPTIONS[self]

    @property
    def rank(self) -> int:
        """Position along the happy path; CANCELLED ranks after everything."""
        return STATUS_ORDER.index(self)


# Status names used by older clients and data
LEGACY_STATUS_ALIASES: dict[str, str] = {
    "DELIVERED": "RETURNED",
    "JOCKEY_ASSIGNED": "PICKUP_ASSIGNED",
    "IN_TRANSIT_TO_WORKSHOP": "PICKED_UP",
    "IN_WORKSHOP": "AT_WORKSHOP",
    "IN_TRANSIT_TO_CUSTOMER": "RETURN_ASSIGNED",
}

STATUS_ORDER: tuple[BookingStatus, ...] = (
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.CONFIRMED,
    BookingStatus.PICKUP_ASSIGNED,
    BookingStatus.PICKED_UP,
    BookingStatus.AT_WORKSHOP,
    BookingStatus.IN_SERVICE,
    BookingStatus.READY_FOR_RETURN,
    BookingStatus.RETURN_ASSIGNED,
    BookingStatus.RETURNED,
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
)

STATUS_DESCRIPTIONS: dict[BookingStatus, str] = {
    BookingStatus.PENDING_PAYMENT: "Waiting for payment",
    BookingStatus.CONFIRMED: "Payment confirmed, preparing for pickup",
    BookingStatus.PICKUP_ASSIGNED: "Jockey assigned for vehicle pickup",
    BookingStatus.PICKED_UP: "Vehicle picked up, in transit to workshop",
    BookingStatus.AT_WORKSHOP: "Vehicle arrived at workshop",
    BookingStatus.IN_SERVICE: "Workshop actively servicing vehicle",
    BookingStatus.READY_FOR_RETURN: "Service completed, ready for return",
    BookingStatus.RETURN_ASSIGNED: "Jockey assigned for vehicle return",
    BookingStatus.RETURNED: "Vehicle returned to customer",
    BookingStatus.COMPLETED: "Booking completed",
    BookingStatus.CANCELLED: "Booking cancelled",
}


class BookingEvent(_NormalisedEnum):
    CONFIRM_PAYMENT = "confirm_payment"
    ASSIGN_JOCKEY = "assign_jockey"
    JOCKEY_DEPARTS = "jockey_departs"
    JOCKEY_ARRIVES = "jockey_arrives"
    COMPLETE_PICKUP = "complete_pickup"
    DELIVER_TO_WORKSHOP = "deliver_to_workshop"
    START_SERVICE = "start_service"
    FINISH_SERVICE = "finish_service"
    ASSIGN_RETURN_JOCKEY = "assign_return_jockey"
    COMPLETE_RETURN = "complete_return"
    CLOSE = "close"
    CANCEL = "cancel"


class ActorRole(_NormalisedEnum):
    CUSTOMER = "CUSTOMER"
    JOCKEY = "JOCKEY"
    WORKSHOP = "WORKSHOP"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"  # payment webhook, dispatch automation


class ExtensionStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


class AssignmentType(str, enum.Enum):
    PICKUP = "PICKUP"
    RETURN = "RETURN"


class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "ASSIGNED"
    EN_ROUTE = "EN_ROUTE"
    AT_LOCATION = "AT_LOCATION"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class NotificationKind(str, enum.Enum):
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    JOCKEY_ASSIGNED = "JOCKEY_ASSIGNED"
    ASSIGNMENT_CREATED = "ASSIGNMENT_CREATED"
    JOCKEY_EN_ROUTE = "JOCKEY_EN_ROUTE"
    JOCKEY_ARRIVED = "JOCKEY_ARRIVED"
    VEHICLE_PICKED_UP = "VEHICLE_PICKED_UP"
    VEHICLE_AT_WORKSHOP = "VEHICLE_AT_WORKSHOP"
    SERVICE_STARTED = "SERVICE_STARTED"
    READY_FOR_RETURN = "READY_FOR_RETURN"
    VEHICLE_RETURNED = "VEHICLE_RETURNED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    EXTENSION_REQUESTED = "EXTENSION_REQUESTED"
    EXTENSION_APPROVED = "EXTENSION_APPROVED"
    EXTENSION_DECLINED = "EXTENSION_DECLINED"


# ── Pricing ───────────────────────────────────────────────────────────


class MileageInterval(str, enum.Enum):
    KM_30K = "30k"
    KM_60K = "60k"
    KM_90K = "90k"
    KM_120K_PLUS = "120k+"

    @property
    def column(self) -> str:
        """Name of the price-matrix column holding this inspection tier."""
        return _INSPECTION_COLUMNS[self]


_INSPECTION_COLUMNS = {
    MileageInterval.KM_30K: "inspection_30k",
    MileageInterval.KM_60K: "inspection_60k",
    MileageInterval.KM_90K: "inspection_90k",
    MileageInterval.KM_120K_PLUS: "inspection_120k",
}


class PriceSource(str, enum.Enum):
    EXACT = "exact"
    FALLBACK_BRAND = "fallback_brand"
    FALLBACK_DEFAULT = "fallback_default"


class ServiceType(_NormalisedEnum):
    INSPECTION = "INSPECTION"
    OIL_SERVICE = "OIL_SERVICE"
    BRAKE_SERVICE_FRONT = "BRAKE_SERVICE_FRONT"
    BRAKE_SERVICE_REAR = "BRAKE_SERVICE_REAR"
    TUV = "TUV"
    CLIMATE_SERVICE = "CLIMATE_SERVICE"

    @classmethod
    def _missing_(cls, value):
        member = super()._missing_(value)
        if member is None and isinstance(value, str):
            for service, info in SERVICE_CATALOG.items():
                if value == info.pricing_key:
                    return service
            if value.upper() == "BRAKE_SERVICE":
                return cls.BRAKE_SERVICE_FRONT
        return member

    @property
    def info(self) -> "ServiceInfo":
        return SERVICE_CATALOG[self]

    @property
    def label(self) -> str:
        return self.info.label

    @property
    def is_inspection(self) -> bool:
        return self is ServiceType.INSPECTION


@dataclass(frozen=True)
class ServiceInfo:
    label: str
    pricing_key: str  # identifier used by the pricing API of older clients
    column: Optional[str]  # flat price column; None for mileage-tiered services
    description: str


SERVICE_CATALOG: dict[ServiceType, ServiceInfo] = {
    ServiceType.INSPECTION: ServiceInfo(
        label="Inspection",
        pricing_key="inspection",
        column=None,
        description="Vehicle inspection and maintenance per manufacturer interval",
    ),
    ServiceType.OIL_SERVICE: ServiceInfo(
        label="Oil service",
        pricing_key="oilService",
        column="oil_service",
        description="Oil and filter change",
    ),
    ServiceType.BRAKE_SERVICE_FRONT: ServiceInfo(
        label="Brake service (front)",
        pricing_key="brakeServiceFront",
        column="brake_service_front",
        description="Front brake pads and discs",
    ),
    ServiceType.BRAKE_SERVICE_REAR: ServiceInfo(
        label="Brake service (rear)",
        pricing_key="brakeServiceRear",
        column="brake_service_rear",
        description="Rear brake pads and discs",
    ),
    ServiceType.TUV: ServiceInfo(
        label="TÜV / HU",
        pricing_key="tuv",
        column="tuv",
        description="Official German TÜV/HU vehicle inspection",
    ),
    ServiceType.CLIMATE_SERVICE: ServiceInfo(
        label="Climate service",
        pricing_key="climateService",
        column="climate_service",
        description="Air conditioning maintenance",
    ),
}

# Last-resort prices when the matrix knows nothing about the brand
DEFAULT_PRICES: dict[ServiceType, Decimal] = {
    ServiceType.INSPECTION: Decimal("250.00"),
    ServiceType.OIL_SERVICE: Decimal("180.00"),
    ServiceType.BRAKE_SERVICE_FRONT: Decimal("400.00"),
    ServiceType.BRAKE_SERVICE_REAR: Decimal("350.00"),
    ServiceType.TUV: Decimal("150.00"),
    ServiceType.CLIMATE_SERVICE: Decimal("180.00"),
}
