"""
Booking orchestrator tests against the real models on in-memory SQLite.

The orchestrator's clock is pinned to 2026-10-19 and pricing to 2026, so
a 2016 Golf 7 is exactly ten years old (multiplier 1.0).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from autoconcierge.domain.entities import (
    DeliveryDetails,
    Handover,
    PickupDetails,
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
)
from autoconcierge.domain.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)
from conftest import FailingNotifier

GOLF = Vehicle(brand="VW", model="Golf 7", year=2016, mileage=75_000)
PICKUP = PickupDetails(
    date=date(2026, 11, 2),
    time_slot="09:00-11:00",
    address="Ruhrstrasse 12",
    city="Witten",
    postal_code="58452",
)
HANDOVER = Handover(
    photos=("front.jpg", "left.jpg", "rear.jpg", "right.jpg"),
    signature="data:image/png;base64,AAAA",
    checklist={"exterior": True, "interior": True, "fuel": True},
    notes="Small scratch on rear bumper",
)


async def new_booking(orchestrator, users, services=("INSPECTION", "OIL_SERVICE"), **kwargs):
    return await orchestrator.create_booking(
        customer_id=users.customer.id,
        vehicle=kwargs.pop("vehicle", GOLF),
        service_types=list(services),
        pickup=kwargs.pop("pickup", PICKUP),
        **kwargs,
    )


async def advance_to_service(orchestrator, booking, users):
    """Drive a fresh booking up to IN_SERVICE."""
    await orchestrator.on_payment_confirmed(booking.id)
    await orchestrator.transition(
        booking.id, BookingEvent.ASSIGN_JOCKEY, ActorRole.ADMIN,
        TransitionPayload(jockey_id=users.jockey.id),
    )
    await orchestrator.transition(booking.id, "jockey_departs", "JOCKEY")
    await orchestrator.transition(booking.id, "jockey_arrives", "JOCKEY")
    await orchestrator.transition(
        booking.id, "complete_pickup", "JOCKEY", TransitionPayload(handover=HANDOVER)
    )
    await orchestrator.transition(booking.id, "deliver_to_workshop", "JOCKEY")
    await orchestrator.transition(booking.id, "start_service", "WORKSHOP")
    return booking


# ── Booking creation ──────────────────────────────────────────────────


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_total_is_sum_of_final_prices(self, orchestrator, users):
        booking = await new_booking(orchestrator, users)

        assert booking.status is BookingStatus.PENDING_PAYMENT
        assert booking.total_price == Decimal("448.00")  # 289 + 159
        assert [s["serviceType"] for s in booking.services] == ["INSPECTION", "OIL_SERVICE"]
        assert booking.services[0]["mileageInterval"] == "90k"
        assert booking.mileage_at_booking == 75_000
        assert booking.version == 1

    @pytest.mark.asyncio
    async def test_booking_numbers_are_sequential_per_month(self, orchestrator, users):
        first = await new_booking(orchestrator, users)
        second = await new_booking(orchestrator, users, services=["TUV"])

        assert first.booking_number == "BK26100001"
        assert second.booking_number == "BK26100002"

    @pytest.mark.asyncio
    async def test_booking_number_sequence_is_numeric(self, orchestrator, users, db_session):
        first = await new_booking(orchestrator, users)
        second = await new_booking(orchestrator, users, services=["TUV"])
        first.booking_number = "BK26109999"
        second.booking_number = "BK261010000"
        await db_session.flush()

        third = await new_booking(orchestrator, users, services=["OIL_SERVICE"])
        assert third.booking_number == "BK261010001"

    @pytest.mark.asyncio
    async def test_taken_booking_number_is_stale_state(self, orchestrator, users, monkeypatch):
        first = await new_booking(orchestrator, users)
        # a concurrent request read the same sequence before this one inserted
        monkeypatch.setattr(
            orchestrator.bookings,
            "next_booking_number",
            AsyncMock(return_value=first.booking_number),
        )

        with pytest.raises(StaleStateError, match="taken concurrently"):
            await new_booking(orchestrator, users, services=["TUV"])

    @pytest.mark.asyncio
    async def test_vehicle_reused_and_odometer_updated(self, orchestrator, users):
        first = await new_booking(orchestrator, users)
        later = Vehicle("VW", "Golf 7", 2016, 80_000)
        second = await new_booking(orchestrator, users, vehicle=later, services=["TUV"])

        assert second.vehicle_id == first.vehicle_id
        vehicle = await orchestrator.vehicles.get_by_id(first.vehicle_id)
        assert vehicle.mileage == 80_000

    @pytest.mark.asyncio
    async def test_creation_recorded_and_notified(self, orchestrator, users, notifier):
        booking = await new_booking(orchestrator, users)

        history = await orchestrator.status_history(booking.id)
        assert [(h.from_status, h.to_status, h.event) for h in history] == [
            (None, BookingStatus.PENDING_PAYMENT, "create")
        ]
        assert notifier.sent[0][0] == users.customer.id
        assert notifier.kinds == ["BOOKING_CREATED"]

    @pytest.mark.asyncio
    async def test_delivery_and_notes_stored(self, orchestrator, users):
        booking = await new_booking(
            orchestrator, users,
            delivery=DeliveryDetails(date=date(2026, 11, 3), time_slot="16:00-18:00"),
            customer_notes="Key is in the mailbox",
        )
        assert booking.delivery_date == date(2026, 11, 3)
        assert booking.customer_notes == "Key is in the mailbox"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "services, message",
        [
            ([], "At least one service is required"),
            (["INSPECTION", "inspection"], "Duplicate service type: INSPECTION"),
            (["CAR_WASH"], "Unknown service type: CAR_WASH"),
        ],
    )
    async def test_invalid_services(self, orchestrator, users, services, message):
        with pytest.raises(ValidationError, match=message):
            await new_booking(orchestrator, users, services=services)

    @pytest.mark.asyncio
    async def test_invalid_vehicle_rejected(self, orchestrator, users):
        with pytest.raises(ValidationError, match="Mileage"):
            await new_booking(orchestrator, users, vehicle=Vehicle("VW", "Golf 7", 2016, 600_000))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "pickup, message",
        [
            (PickupDetails(date(2026, 10, 18), "09:00", "Ruhrstrasse 12", "Witten", "58452"),
             "must not be in the past"),
            (PickupDetails(date(2026, 11, 2), "9am", "Ruhrstrasse 12", "Witten", "58452"),
             "Invalid time slot format"),
            (PickupDetails(date(2026, 11, 2), "09:00", " ", "Witten", "58452"),
             "address is required"),
        ],
    )
    async def test_invalid_pickup(self, orchestrator, users, pickup, message):
        with pytest.raises(ValidationError, match=message):
            await new_booking(orchestrator, users, pickup=pickup)

    @pytest.mark.asyncio
    async def test_delivery_before_pickup_rejected(self, orchestrator, users):
        with pytest.raises(ValidationError, match="Delivery date"):
            await new_booking(
                orchestrator, users, delivery=DeliveryDetails(date=date(2026, 11, 1))
            )

    @pytest.mark.asyncio
    async def test_unknown_customer(self, orchestrator, users):
        with pytest.raises(NotFoundError):
            await orchestrator.create_booking(9999, GOLF, ["TUV"], PICKUP)

    @pytest.mark.asyncio
    async def test_full_slot_conflicts_until_cancelled(self, make_orchestrator, users):
        orchestrator = make_orchestrator(max_bookings_per_slot=1)
        first = await new_booking(orchestrator, users)

        with pytest.raises(ConflictError, match="fully booked"):
            await new_booking(orchestrator, users)

        await orchestrator.transition(first.id, "cancel", "CUSTOMER")
        replacement = await new_booking(orchestrator, users)
        assert replacement.status is BookingStatus.PENDING_PAYMENT


# ── Lifecycle through the orchestrator ────────────────────────────────


class TestTransitions:
    @pytest.mark.asyncio
    async def test_assign_before_payment_rejected(self, orchestrator, users):
        booking = await new_booking(orchestrator, users)

        with pytest.raises(InvalidTransitionError) as exc:
            await orchestrator.transition(
                booking.id, "assign_jockey", "ADMIN",
                TransitionPayload(jockey_id=users.jockey.id),
            )
        assert exc.value.current == "PENDING_PAYMENT"
        assert booking.status is BookingStatus.PENDING_PAYMENT

    @pytest.mark.asyncio
    async def test_payment_confirmation_is_idempotent(self, orchestrator, users, notifier):
        booking = await new_booking(orchestrator, users)

        await orchestrator.on_payment_confirmed(booking.id)
        paid_at = booking.paid_at
        await orchestrator.on_payment_confirmed(booking.id)

        assert booking.status is BookingStatus.CONFIRMED
        assert booking.paid_at == paid_at
        assert notifier.kinds.count("BOOKING_CONFIRMED") == 1

    @pytest.mark.asyncio
    async def test_assigned_user_must_be_jockey(self, orchestrator, users):
        booking = await new_booking(orchestrator, users)
        await orchestrator.on_payment_confirmed(booking.id)

        with pytest.raises(ValidationError, match="is not a jockey"):
            await orchestrator.transition(
                booking.id, "assign_jockey", "ADMIN",
                TransitionPayload(jockey_id=users.customer.id),
            )
        with pytest.raises(NotFoundError):
            await orchestrator.transition(
                booking.id, "assign_jockey", "ADMIN", TransitionPayload(jockey_id=9999)
            )

    @pytest.mark.asyncio
    async def test_pickup_leg_timestamps_and_handover(self, orchestrator, users, notifier):
        booking = await new_booking(orchestrator, users)
        await advance_to_service(orchestrator, booking, users)

        (leg,) = await orchestrator.assignments.list_for_booking(booking.id)
        assert leg.type is AssignmentType.PICKUP
        assert leg.status is AssignmentStatus.COMPLETED
        assert leg.jockey_id == users.jockey.id
        assert leg.departed_at <= leg.arrived_at <= leg.completed_at
        assert leg.handover["signature"] == HANDOVER.signature
        assert len(leg.handover["photos"]) == 4

        assert booking.status is BookingStatus.IN_SERVICE
        assert booking.jockey_id == users.jockey.id
        assert (users.jockey.id, "ASSIGNMENT_CREATED") in [
            (user_id, kind) for user_id, kind, _ in notifier.sent
        ]

    @pytest.mark.asyncio
    async def test_full_round_trip(self, orchestrator, users):
        booking = await new_booking(orchestrator, users)
        await advance_to_service(orchestrator, booking, users)
        await orchestrator.transition(booking.id, "finish_service", "WORKSHOP")
        await orchestrator.transition(
            booking.id, "assign_return_jockey", "WORKSHOP",
            TransitionPayload(jockey_id=users.other_jockey.id),
        )
        # departure / arrival stamps back-filled on completion
        await orchestrator.transition(
            booking.id, "complete_return", "JOCKEY", TransitionPayload(handover=HANDOVER)
        )
        await orchestrator.transition(booking.id, "close", "SYSTEM")

        assert booking.status is BookingStatus.COMPLETED
        history = await orchestrator.status_history(booking.id)
        statuses = [h.to_status for h in history]
        assert statuses[-1] is BookingStatus.COMPLETED
        assert [s.rank for s in statuses] == sorted(s.rank for s in statuses)

        legs = await orchestrator.assignments.list_for_booking(booking.id)
        ret = next(leg for leg in legs if leg.type is AssignmentType.RETURN)
        assert ret.jockey_id == users.other_jockey.id
        assert ret.departed_at is not None and ret.arrived_at is not None

        view = await orchestrator.booking_view(booking.id)
        assert view.allowed_events == []

    @pytest.mark.asyncio
    async def test_cancel_releases_pickup_assignment(self, orchestrator, users):
        booking = await new_booking(orchestrator, users)
        await orchestrator.on_payment_confirmed(booking.id)
        await orchestrator.transition(
            booking.id, "assign_jockey", "ADMIN", TransitionPayload(jockey_id=users.jockey.id)
        )
        assert booking.jockey_id == users.jockey.id
        await orchestrator.transition(
            booking.id, "cancel", "CUSTOMER", TransitionPayload(reason="Car sold")
        )

        (leg,) = await orchestrator.assignments.list_for_booking(booking.id)
        assert leg.status is AssignmentStatus.CANCELLED
        assert booking.status is BookingStatus.CANCELLED
        assert booking.internal_notes == "Cancelled: Car sold"
        assert booking.jockey_id is None

    @pytest.mark.asyncio
    async def test_unknown_booking(self, orchestrator, users):
        with pytest.raises(NotFoundError):
            await orchestrator.transition(424242, "cancel", "ADMIN")

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_block(self, make_orchestrator, users):
        failing = FailingNotifier()
        orchestrator = make_orchestrator(notifier=failing)

        booking = await new_booking(orchestrator, users)
        await orchestrator.on_payment_confirmed(booking.id)

        assert booking.status is BookingStatus.CONFIRMED
        assert failing.calls == 2


# ── Extensions ────────────────────────────────────────────────────────


class TestExtensions:
    @pytest.mark.asyncio
    async def test_approval_adds_to_total_and_requests_payment(
        self, orchestrator, users, payments, notifier
    ):
        booking = await new_booking(orchestrator, users)
        await advance_to_service(orchestrator, booking, users)

        ext = await orchestrator.create_extension(booking.id, "Replace wiper blades", "39.90")
        view = await orchestrator.booking_view(booking.id)
        assert view.pending_extension.id == ext.id
        assert BookingEvent.FINISH_SERVICE in view.allowed_events

        with pytest.raises(InvalidTransitionError, match="awaiting customer approval"):
            await orchestrator.transition(booking.id, "finish_service", "WORKSHOP")

        resolved = await orchestrator.resolve_extension(ext.id, approve=True)
        assert resolved.status is ExtensionStatus.APPROVED
        assert resolved.approved_at is not None
        assert booking.total_price == Decimal("487.90")
        assert payments.requests == [
            {"booking_id": booking.id, "extension_id": ext.id,
             "amount": Decimal("39.90"), "currency": "EUR"}
        ]
        assert "EXTENSION_REQUESTED" in notifier.kinds
        assert "EXTENSION_APPROVED" in notifier.kinds

        await orchestrator.transition(booking.id, "finish_service", "WORKSHOP")
        assert booking.status is BookingStatus.READY_FOR_RETURN

    @pytest.mark.asyncio
    async def test_approved_amounts_accumulate(self, orchestrator, users):
        booking = await new_booking(orchestrator, users)
        await advance_to_service(orchestrator, booking, users)

        for amount in ("39.90", "120.00"):
            ext = await orchestrator.create_extension(booking.id, "Extra work", amount)
            await orchestrator.resolve_extension(ext.id, approve=True)

        assert booking.total_price == Decimal("448.00") + Decimal("39.90") + Decimal("120.00")

    @pytest.mark.asyncio
    async def test_decline_keeps_total(self, orchestrator, users, payments):
        booking = await new_booking(orchestrator, users)
        await advance_to_service(orchestrator, booking, users)

        ext = await orchestrator.create_extension(booking.id, "Replace brake fluid", 89)
        resolved = await orchestrator.resolve_extension(
            ext.id, approve=False, reason="Too expensive"
        )

        assert resolved.status is ExtensionStatus.DECLINED
        assert resolved.decline_reason == "Too expensive"
        assert booking.total_price == Decimal("448.00")
        assert payments.requests == []

        # a new proposal is allowed once the previous one is resolved
        again = await orchestrator.create_extension(booking.id, "Replace brake fluid", 79)
        assert again.status is ExtensionStatus.PENDING
        assert len(await orchestrator.list_extensions(booking.id)) == 2

    @pytest.mark.asyncio
    async def test_second_pending_extension_conflicts(self, orchestrator, users):
        booking = await new_booking(orchestrator, users)
        await advance_to_service(orchestrator, booking, users)
        await orchestrator.create_extension(booking.id, "Replace wiper blades", 40)

        with pytest.raises(ConflictError):
            await orchestrator.create_extension(booking.id, "Replace air filter", 30)

    @pytest.mark.asyncio
    async def test_resolve_twice_conflicts(self, orchestrator, users):
        booking = await new_booking(orchestrator, users)
        await advance_to_service(orchestrator, booking, users)
        ext = await orchestrator.create_extension(booking.id, "Replace wiper blades", 40)
        await orchestrator.resolve_extension(ext.id, approve=True)

        with pytest.raises(ConflictError, match="already approved"):
            await orchestrator.resolve_extension(ext.id, approve=False)

    @pytest.mark.asyncio
    async def test_extension_requires_service_in_progress(self, orchestrator, users):
        booking = await new_booking(orchestrator, users)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.create_extension(booking.id, "Replace wiper blades", 40)

    @pytest.mark.asyncio
    async def test_unknown_extension(self, orchestrator, users):
        with pytest.raises(NotFoundError):
            await orchestrator.resolve_extension(31337, approve=True)
