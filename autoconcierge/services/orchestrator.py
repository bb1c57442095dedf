"""
Booking Orchestrator
====================

Facade over the pricing engine, the booking lifecycle and the extension
sub-flow.  One instance per unit of work: it receives the request's
``AsyncSession`` and builds its repositories from it; the pricing engine,
notifier, payment requester, lock factory and clock are injected.

Write path for every mutating call
----------------------------------
1. Take the per-booking Redis lock (``lock:booking:<id>``).
2. Load the booking and the facts its guards need (active jockey leg,
   pending extension).
3. Resolve the request against the state machine (pure, may raise).
4. Apply side effects, bump the optimistic ``version`` and flush.
5. Write the audit row, then fire notifications.  Notification and payment
   request failures are logged and dropped.

Commit / rollback belongs to the caller (``get_db`` in the API).
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from autoconcierge.config import settings
from autoconcierge.domain.entities import (
    DeliveryDetails,
    PickupDetails,
    PriceCalculationResult,
    TransitionPayload,
    Vehicle,
)
from autoconcierge.domain.enums import (
    ActorRole,
    AssignmentStatus,
    AssignmentType,
    BookingEvent,
    BookingStatus,
    ExtensionStatus,
    NotificationKind,
    ServiceType,
)
from autoconcierge.domain.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)
from autoconcierge.domain.extensions import ExtensionSubflow
from autoconcierge.domain.lifecycle import BookingLifecycle, Transition, TransitionContext
from autoconcierge.domain.pricing import PricingEngine, parse_service_type
from autoconcierge.infrastructure.locks import LockNotAcquiredError, booking_lock_key
from autoconcierge.infrastructure.models import (
    BookingModel,
    BookingStatusChangeModel,
    ExtensionModel,
    JockeyAssignmentModel,
)
from autoconcierge.infrastructure.notifications import Notifier, PaymentRequester
from autoconcierge.infrastructure.repositories import (
    BookingRepository,
    ExtensionRepository,
    JockeyAssignmentRepository,
    PriceMatrixRepository,
    StatusHistoryRepository,
    UserRepository,
    VehicleRepository,
)

logger = logging.getLogger(__name__)

CREATE_EVENT = "create"

# Status in which a jockey leg of the given type is in progress
_ACTIVE_LEG: dict[BookingStatus, AssignmentType] = {
    BookingStatus.PICKUP_ASSIGNED: AssignmentType.PICKUP,
    BookingStatus.RETURN_ASSIGNED: AssignmentType.RETURN,
}

_ASSIGN_EVENTS: dict[BookingEvent, AssignmentType] = {
    BookingEvent.ASSIGN_JOCKEY: AssignmentType.PICKUP,
    BookingEvent.ASSIGN_RETURN_JOCKEY: AssignmentType.RETURN,
}

_LEG_EVENTS = frozenset({
    BookingEvent.JOCKEY_DEPARTS,
    BookingEvent.JOCKEY_ARRIVES,
    BookingEvent.COMPLETE_PICKUP,
    BookingEvent.COMPLETE_RETURN,
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BookingView:
    """Booking plus the derived facts clients render."""

    booking: BookingModel
    pending_extension: Optional[ExtensionModel]
    allowed_events: list[BookingEvent]

    @property
    def status_description(self) -> str:
        return BookingStatus(self.booking.status).description


class BookingOrchestrator:
    def __init__(
        self,
        session: AsyncSession,
        *,
        pricing: Optional[PricingEngine] = None,
        notifier: Optional[Notifier] = None,
        payments: Optional[PaymentRequester] = None,
        lock_factory: Optional[Callable[[str], Any]] = None,
        clock: Callable[[], datetime] = _utcnow,
        lifecycle: Optional[BookingLifecycle] = None,
        max_bookings_per_slot: int = settings.max_bookings_per_slot,
        currency: str = settings.currency,
    ):
        self.session = session
        self.users = UserRepository(session)
        self.vehicles = VehicleRepository(session)
        self.bookings = BookingRepository(session)
        self.extensions = ExtensionRepository(session)
        self.assignments = JockeyAssignmentRepository(session)
        self.history = StatusHistoryRepository(session)
        self.pricing = pricing or PricingEngine(PriceMatrixRepository(session))
        self.lifecycle = lifecycle or BookingLifecycle()
        self.subflow = ExtensionSubflow()
        self.notifier = notifier
        self.payments = payments
        self.lock_factory = lock_factory
        self.clock = clock
        self.max_bookings_per_slot = max_bookings_per_slot
        self.currency = currency

    # ── Pricing ───────────────────────────────────────────────────────

    async def calculate_price(
        self, vehicle: Vehicle, service_type: Union[str, ServiceType]
    ) -> PriceCalculationResult:
        return await self.pricing.calculate_price(vehicle, service_type)

    async def quote(
        self, vehicle: Vehicle, service_types: Iterable[Union[str, ServiceType]]
    ) -> list[PriceCalculationResult]:
        return await self.pricing.quote(vehicle, service_types)

    # ── Booking creation ──────────────────────────────────────────────

    async def create_booking(
        self,
        customer_id: int,
        vehicle: Vehicle,
        service_types: Iterable[Union[str, ServiceType]],
        pickup: PickupDetails,
        delivery: Optional[DeliveryDetails] = None,
        customer_notes: Optional[str] = None,
    ) -> BookingModel:
        """Price the requested services and persist a ``PENDING_PAYMENT`` booking."""
        customer = await self.users.get_by_id(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")

        services = self._parse_services(service_types)
        today = self.clock().date()
        pickup.validate(today)
        delivery = delivery or DeliveryDetails()
        delivery.validate(pickup)

        taken = await self.bookings.count_in_slot(pickup.date, pickup.time_slot)
        if taken >= self.max_bookings_per_slot:
            raise ConflictError(
                f"Pickup slot {pickup.date.isoformat()} {pickup.time_slot} is fully booked"
            )

        prices = await self.pricing.quote(vehicle, services)
        total = sum((p.final_price for p in prices), Decimal("0"))

        vehicle_row = await self.vehicles.find_or_create(customer_id, vehicle)
        booking = BookingModel(
            booking_number=await self.bookings.next_booking_number(today),
            customer_id=customer_id,
            vehicle_id=vehicle_row.id,
            services=[p.as_dict() for p in prices],
            mileage_at_booking=vehicle.mileage,
            total_price=total,
            status=BookingStatus.PENDING_PAYMENT,
            pickup_date=pickup.date,
            pickup_time_slot=pickup.time_slot,
            pickup_address=pickup.address.strip(),
            pickup_city=pickup.city,
            pickup_postal_code=pickup.postal_code,
            delivery_date=delivery.date,
            delivery_time_slot=delivery.time_slot,
            customer_notes=customer_notes,
        )
        await self.bookings.create(booking)
        await self.history.record(
            booking_id=booking.id,
            from_status=None,
            to_status=BookingStatus.PENDING_PAYMENT,
            event=CREATE_EVENT,
            actor=ActorRole.CUSTOMER,
        )
        logger.info(
            "Booking %s created for customer %d: %d services, total %s",
            booking.booking_number, customer_id, len(prices), total,
        )
        await self._notify(customer_id, NotificationKind.BOOKING_CREATED, booking)
        return booking

    @staticmethod
    def _parse_services(
        service_types: Iterable[Union[str, ServiceType]]
    ) -> list[ServiceType]:
        services: list[ServiceType] = []
        for raw in service_types:
            service = parse_service_type(raw)
            if service in services:
                raise ValidationError(f"Duplicate service type: {service.value}")
            services.append(service)
        if not services:
            raise ValidationError("At least one service is required")
        return services

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def transition(
        self,
        booking_id: int,
        event: Union[str, BookingEvent],
        actor: Union[str, ActorRole],
        payload: Optional[TransitionPayload] = None,
    ) -> BookingModel:
        """Apply *event* on behalf of *actor*; raise when the table forbids it."""
        async with self._locked(booking_id):
            return await self._apply(booking_id, event, actor, payload or TransitionPayload())

    async def on_payment_confirmed(self, booking_id: int) -> BookingModel:
        """Payment webhook: ``confirm_payment`` as SYSTEM.  Replays are no-ops."""
        booking = await self.get_booking(booking_id)
        if booking.paid_at is not None:
            logger.info("Payment for booking %s already recorded", booking.booking_number)
            return booking
        return await self.transition(
            booking_id, BookingEvent.CONFIRM_PAYMENT, ActorRole.SYSTEM
        )

    async def _apply(
        self,
        booking_id: int,
        event: Union[str, BookingEvent],
        actor: Union[str, ActorRole],
        payload: TransitionPayload,
    ) -> BookingModel:
        booking = await self.get_booking(booking_id)
        current = BookingStatus(booking.status)

        leg = _ACTIVE_LEG.get(current)
        active = await self.assignments.get_active(booking.id, leg) if leg else None
        pending = await self.extensions.get_pending(booking.id)
        context = TransitionContext(
            payload=payload,
            has_pending_extension=pending is not None,
            jockey_departed=bool(active and active.departed_at),
            jockey_arrived=bool(active and active.arrived_at),
        )
        transition = self.lifecycle.resolve(current, event, actor, context)
        actor = ActorRole(actor)

        now = self.clock()
        await self._side_effects(booking, transition, payload, active, now)
        booking.status = transition.target
        # status-preserving jockey progress must still move the version
        self.bookings.touch(booking, now)
        await self.bookings.save(booking)
        await self.history.record(
            booking_id=booking.id,
            from_status=current,
            to_status=transition.target,
            event=transition.event.value,
            actor=actor,
        )
        logger.info(
            "Booking %s: %s by %s (%s -> %s)",
            booking.booking_number, transition.event.value, actor.value,
            current.value, transition.target.value,
        )

        if transition.notification is not None:
            await self._notify(booking.customer_id, transition.notification, booking)
        if transition.event in _ASSIGN_EVENTS:
            await self._notify(payload.jockey_id, NotificationKind.ASSIGNMENT_CREATED, booking)
        return booking

    async def _side_effects(
        self,
        booking: BookingModel,
        transition: Transition,
        payload: TransitionPayload,
        active: Optional[JockeyAssignmentModel],
        now: datetime,
    ) -> None:
        event = transition.event

        if event is BookingEvent.CONFIRM_PAYMENT:
            booking.paid_at = booking.paid_at or now

        elif event in _ASSIGN_EVENTS:
            await self._require_jockey(payload.jockey_id)
            await self.assignments.create(
                JockeyAssignmentModel(
                    booking_id=booking.id,
                    type=_ASSIGN_EVENTS[event],
                    status=AssignmentStatus.ASSIGNED,
                    jockey_id=payload.jockey_id,
                    scheduled_time=payload.scheduled_time,
                )
            )
            booking.jockey_id = payload.jockey_id

        elif event in _LEG_EVENTS:
            if active is None:
                raise InvalidTransitionError(
                    transition.source.value, event.value, "no active jockey assignment"
                )
            # departed_at <= arrived_at <= completed_at
            if event is BookingEvent.JOCKEY_DEPARTS:
                active.departed_at = now
                active.status = AssignmentStatus.EN_ROUTE
            elif event is BookingEvent.JOCKEY_ARRIVES:
                active.arrived_at = now
                active.status = AssignmentStatus.AT_LOCATION
            else:
                active.departed_at = active.departed_at or now
                active.arrived_at = active.arrived_at or now
                active.completed_at = now
                active.handover = payload.handover.as_dict()
                active.status = AssignmentStatus.COMPLETED

        elif event is BookingEvent.CANCEL:
            if active is not None:
                active.status = AssignmentStatus.CANCELLED
            booking.jockey_id = None
            if payload.reason:
                note = f"Cancelled: {payload.reason}"
                booking.internal_notes = (
                    f"{booking.internal_notes}\n{note}" if booking.internal_notes else note
                )

    async def _require_jockey(self, jockey_id: int) -> None:
        user = await self.users.get_by_id(jockey_id)
        if user is None:
            raise NotFoundError(f"Jockey {jockey_id} not found")
        if ActorRole(user.role) is not ActorRole.JOCKEY:
            raise ValidationError(f"User {jockey_id} is not a jockey")

    # ── Extensions ────────────────────────────────────────────────────

    async def create_extension(
        self,
        booking_id: int,
        description: str,
        amount: Union[Decimal, str, int],
        actor: Union[str, ActorRole] = ActorRole.WORKSHOP,
    ) -> ExtensionModel:
        async with self._locked(booking_id):
            booking = await self.get_booking(booking_id)
            pending = await self.extensions.get_pending(booking.id)
            value = self.subflow.validate_open(
                booking.status, pending is not None, description, amount, actor
            )
            extension = await self.extensions.create(
                ExtensionModel(
                    booking_id=booking.id,
                    description=description.strip(),
                    total_amount=value,
                    status=ExtensionStatus.PENDING,
                    created_at=self.clock(),
                )
            )
            # racing second request fails its flush
            self.bookings.touch(booking, self.clock())
            await self.bookings.save(booking)

        logger.info(
            "Extension %d requested on booking %s: %s",
            extension.id, booking.booking_number, value,
        )
        await self._notify(
            booking.customer_id, NotificationKind.EXTENSION_REQUESTED, booking,
            extensionId=extension.id, amount=str(value),
        )
        return extension

    async def resolve_extension(
        self,
        extension_id: int,
        approve: bool,
        actor: Union[str, ActorRole] = ActorRole.CUSTOMER,
        reason: Optional[str] = None,
    ) -> ExtensionModel:
        extension = await self.extensions.get_by_id(extension_id)
        if extension is None:
            raise NotFoundError(f"Extension {extension_id} not found")

        async with self._locked(extension.booking_id):
            booking = await self.get_booking(extension.booking_id)
            outcome = self.subflow.resolve(extension.status, approve, actor)
            now = self.clock()
            extension.status = outcome
            if outcome is ExtensionStatus.APPROVED:
                extension.approved_at = now
            else:
                extension.declined_at = now
                extension.decline_reason = reason
            booking.total_price = self.subflow.apply_to_total(
                booking.total_price, extension.total_amount, outcome
            )
            self.bookings.touch(booking, now)
            await self.bookings.save(booking)

        logger.info(
            "Extension %d on booking %s %s; total now %s",
            extension.id, booking.booking_number, outcome.value.lower(),
            booking.total_price,
        )
        if outcome is ExtensionStatus.APPROVED:
            await self._notify(
                booking.customer_id, NotificationKind.EXTENSION_APPROVED, booking,
                extensionId=extension.id,
            )
            await self._request_payment(booking, extension)
        else:
            await self._notify(
                booking.customer_id, NotificationKind.EXTENSION_DECLINED, booking,
                extensionId=extension.id,
            )
        return extension

    # ── Queries ───────────────────────────────────────────────────────

    async def get_booking(self, booking_id: int) -> BookingModel:
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    async def booking_view(self, booking_id: int) -> BookingView:
        booking = await self.get_booking(booking_id)
        return BookingView(
            booking=booking,
            pending_extension=await self.extensions.get_pending(booking.id),
            allowed_events=self.lifecycle.allowed_events(BookingStatus(booking.status)),
        )

    async def list_extensions(self, booking_id: int) -> list[ExtensionModel]:
        booking = await self.get_booking(booking_id)
        return await self.extensions.list_for_booking(booking.id)

    async def status_history(self, booking_id: int) -> list[BookingStatusChangeModel]:
        booking = await self.get_booking(booking_id)
        return await self.history.list_for_booking(booking.id)

    # ── Internals ─────────────────────────────────────────────────────

    def _locked(self, booking_id: int):
        if self.lock_factory is None:
            return nullcontext()
        return _BookingLock(self.lock_factory(booking_lock_key(booking_id)), booking_id)

    async def _notify(
        self, user_id: Optional[int], kind: NotificationKind, booking: BookingModel, **extra
    ) -> None:
        if self.notifier is None:
            return
        context = {
            "bookingId": booking.id,
            "bookingNumber": booking.booking_number,
            "status": BookingStatus(booking.status).value,
            **extra,
        }
        try:
            await self.notifier.notify(user_id, kind, context)
        except Exception:
            logger.exception(
                "Notification %s for booking %s failed", kind.value, booking.booking_number
            )

    async def _request_payment(self, booking: BookingModel, extension: ExtensionModel) -> None:
        if self.payments is None:
            return
        try:
            await self.payments.request_extension_payment(
                booking.id, extension.id, extension.total_amount, self.currency
            )
        except Exception:
            logger.exception(
                "Payment request for extension %d on booking %s failed",
                extension.id, booking.booking_number,
            )


class _BookingLock:
    """Adapts a lock's acquisition failure to ``StaleStateError``."""

    def __init__(self, lock, booking_id: int):
        self.lock = lock
        self.booking_id = booking_id

    async def __aenter__(self):
        try:
            await self.lock.__aenter__()
        except LockNotAcquiredError:
            raise StaleStateError(
                f"Booking {self.booking_id} is being modified by another request"
            ) from None
        return self

    async def __aexit__(self, *exc):
        await self.lock.__aexit__(*exc)
