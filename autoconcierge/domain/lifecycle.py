"""
Booking lifecycle state machine.

Each row of ``TRANSITIONS`` is ``{source, event, target, actors, guard}``.
Resolution is a pure function of the current status, the requested event,
the acting role and a ``TransitionContext``; persistence and side effects
belong to the orchestrator.

Happy path::

    PENDING_PAYMENT -> CONFIRMED -> PICKUP_ASSIGNED -> PICKED_UP
      -> AT_WORKSHOP -> IN_SERVICE -> READY_FOR_RETURN
      -> RETURN_ASSIGNED -> RETURNED -> COMPLETED

``CANCELLED`` is reachable only before the vehicle is picked up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Union

from .entities import TransitionPayload
from .enums import ActorRole, BookingEvent, BookingStatus, NotificationKind
from .errors import InvalidTransitionError

S = BookingStatus
E = BookingEvent
A = ActorRole


@dataclass(frozen=True)
class TransitionContext:
    """Facts about the booking that guards need besides its status."""

    payload: TransitionPayload = field(default_factory=TransitionPayload)
    has_pending_extension: bool = False
    jockey_departed: bool = False
    jockey_arrived: bool = False


# A guard returns ``None`` when satisfied, otherwise the unmet condition.
Guard = Callable[[TransitionContext], Optional[str]]


def jockey_given(ctx: TransitionContext) -> Optional[str]:
    if ctx.payload.jockey_id is None:
        return "a jockey must be assigned"
    return None


def not_departed(ctx: TransitionContext) -> Optional[str]:
    if ctx.jockey_departed:
        return "jockey has already departed"
    return None


def departed_not_arrived(ctx: TransitionContext) -> Optional[str]:
    if not ctx.jockey_departed:
        return "jockey has not departed yet"
    if ctx.jockey_arrived:
        return "jockey has already arrived"
    return None


def handover_complete(ctx: TransitionContext) -> Optional[str]:
    handover = ctx.payload.handover
    if handover is None:
        return "handover documentation is required"
    missing = handover.missing_items()
    if missing:
        return "handover documentation incomplete: missing " + ", ".join(missing)
    return None


def no_pending_extension(ctx: TransitionContext) -> Optional[str]:
    if ctx.has_pending_extension:
        return "an extension is awaiting customer approval"
    return None


@dataclass(frozen=True)
class Transition:
    source: BookingStatus
    event: BookingEvent
    target: BookingStatus
    actors: frozenset[ActorRole]
    guard: Optional[Guard] = None
    notification: Optional[NotificationKind] = None


def _t(source, event, target, actors, guard=None, notification=None) -> Transition:
    return Transition(source, event, target, frozenset(actors), guard, notification)


TRANSITIONS: tuple[Transition, ...] = (
    _t(S.PENDING_PAYMENT, E.CONFIRM_PAYMENT, S.CONFIRMED,
       {A.SYSTEM, A.ADMIN}, notification=NotificationKind.BOOKING_CONFIRMED),

    # Pickup leg
    _t(S.CONFIRMED, E.ASSIGN_JOCKEY, S.PICKUP_ASSIGNED,
       {A.SYSTEM, A.WORKSHOP, A.ADMIN}, jockey_given, NotificationKind.JOCKEY_ASSIGNED),
    _t(S.PICKUP_ASSIGNED, E.JOCKEY_DEPARTS, S.PICKUP_ASSIGNED,
       {A.JOCKEY, A.ADMIN}, not_departed, NotificationKind.JOCKEY_EN_ROUTE),
    _t(S.PICKUP_ASSIGNED, E.JOCKEY_ARRIVES, S.PICKUP_ASSIGNED,
       {A.JOCKEY, A.ADMIN}, departed_not_arrived, NotificationKind.JOCKEY_ARRIVED),
    _t(S.PICKUP_ASSIGNED, E.COMPLETE_PICKUP, S.PICKED_UP,
       {A.JOCKEY, A.ADMIN}, handover_complete, NotificationKind.VEHICLE_PICKED_UP),
    _t(S.PICKED_UP, E.DELIVER_TO_WORKSHOP, S.AT_WORKSHOP,
       {A.JOCKEY, A.WORKSHOP, A.ADMIN}, notification=NotificationKind.VEHICLE_AT_WORKSHOP),

    # Workshop
    _t(S.AT_WORKSHOP, E.START_SERVICE, S.IN_SERVICE,
       {A.WORKSHOP, A.ADMIN}, notification=NotificationKind.SERVICE_STARTED),
    _t(S.IN_SERVICE, E.FINISH_SERVICE, S.READY_FOR_RETURN,
       {A.WORKSHOP, A.ADMIN}, no_pending_extension, NotificationKind.READY_FOR_RETURN),

    # Return leg
    _t(S.READY_FOR_RETURN, E.ASSIGN_RETURN_JOCKEY, S.RETURN_ASSIGNED,
       {A.SYSTEM, A.WORKSHOP, A.ADMIN}, jockey_given, NotificationKind.JOCKEY_ASSIGNED),
    _t(S.RETURN_ASSIGNED, E.JOCKEY_DEPARTS, S.RETURN_ASSIGNED,
       {A.JOCKEY, A.ADMIN}, not_departed, NotificationKind.JOCKEY_EN_ROUTE),
    _t(S.RETURN_ASSIGNED, E.JOCKEY_ARRIVES, S.RETURN_ASSIGNED,
       {A.JOCKEY, A.ADMIN}, departed_not_arrived, NotificationKind.JOCKEY_ARRIVED),
    _t(S.RETURN_ASSIGNED, E.COMPLETE_RETURN, S.RETURNED,
       {A.JOCKEY, A.ADMIN}, handover_complete, NotificationKind.VEHICLE_RETURNED),
    _t(S.RETURNED, E.CLOSE, S.COMPLETED,
       {A.SYSTEM, A.ADMIN}, notification=NotificationKind.BOOKING_COMPLETED),

    # Cancellation, only before pickup
    *(
        _t(source, E.CANCEL, S.CANCELLED,
           {A.CUSTOMER, A.ADMIN}, notification=NotificationKind.BOOKING_CANCELLED)
        for source in (S.PENDING_PAYMENT, S.CONFIRMED, S.PICKUP_ASSIGNED)
    ),
)


class BookingLifecycle:
    """Validates lifecycle events against the transition table."""

    def __init__(self, transitions: Iterable[Transition] = TRANSITIONS):
        self._table: dict[tuple[BookingStatus, BookingEvent], Transition] = {}
        for t in transitions:
            key = (t.source, t.event)
            if key in self._table:
                raise ValueError(f"Duplicate transition for {t.source} / {t.event}")
            self._table[key] = t

    def allowed_events(self, status: BookingStatus) -> list[BookingEvent]:
        return [event for (source, event) in self._table if source == status]

    def is_terminal(self, status: BookingStatus) -> bool:
        return not self.allowed_events(status)

    def is_cancellable(self, status: BookingStatus) -> bool:
        return (status, BookingEvent.CANCEL) in self._table

    def resolve(
        self,
        status: BookingStatus,
        event: Union[str, BookingEvent],
        actor: Union[str, ActorRole],
        context: Optional[TransitionContext] = None,
    ) -> Transition:
        """Return the transition to apply, or raise ``InvalidTransitionError``."""
        status = BookingStatus(status)
        try:
            event = BookingEvent(event)
        except ValueError:
            raise InvalidTransitionError(status.value, str(event), "unknown event") from None
        try:
            actor = ActorRole(actor)
        except ValueError:
            raise InvalidTransitionError(
                status.value, event.value, f"unknown actor role {actor}"
            ) from None

        transition = self._table.get((status, event))
        if transition is None:
            allowed = ", ".join(e.value for e in self.allowed_events(status)) or "none"
            raise InvalidTransitionError(
                status.value, event.value, f"allowed events: {allowed}"
            )
        if actor not in transition.actors:
            raise InvalidTransitionError(
                status.value, event.value, f"actor {actor.value} is not permitted"
            )
        if transition.guard is not None:
            unmet = transition.guard(context or TransitionContext())
            if unmet:
                raise InvalidTransitionError(status.value, event.value, unmet)
        return transition


def describe(status: Union[str, BookingStatus]) -> str:
    """Human-readable text for *status*; the only status-to-label mapping."""
    return BookingStatus(status).description
