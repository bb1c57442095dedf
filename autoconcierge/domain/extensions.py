"""
Service-extension sub-flow.

A workshop that finds extra chargeable work while the vehicle is in
service proposes an extension; the customer approves or declines it::

    PENDING -> APPROVED | DECLINED

At most one extension per booking may be PENDING.  There is no approval
timeout: an unanswered extension stays PENDING and blocks
``finish_service``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Union

from .enums import ActorRole, BookingStatus, ExtensionStatus
from .errors import ConflictError, InvalidTransitionError, ValidationError
from .pricing import round_half_up

OPEN_EVENT = "create_extension"
RESOLVE_EVENT = "resolve_extension"


def _permitted(actor, allowed: frozenset, current: str, event: str) -> ActorRole:
    try:
        role = ActorRole(actor)
    except ValueError:
        raise InvalidTransitionError(current, event, f"unknown actor role {actor}") from None
    if role not in allowed:
        raise InvalidTransitionError(current, event, f"actor {role.value} is not permitted")
    return role


class ExtensionSubflow:
    open_statuses = frozenset({BookingStatus.IN_SERVICE})
    open_actors = frozenset({ActorRole.WORKSHOP, ActorRole.ADMIN})
    resolve_actors = frozenset({ActorRole.CUSTOMER, ActorRole.ADMIN})

    def validate_open(
        self,
        booking_status: BookingStatus,
        has_pending: bool,
        description: str,
        amount: Union[Decimal, str, int],
        actor: Union[str, ActorRole] = ActorRole.WORKSHOP,
    ) -> Decimal:
        """Check an extension may be opened; return the amount in cents precision."""
        booking_status = BookingStatus(booking_status)
        _permitted(actor, self.open_actors, booking_status.value, OPEN_EVENT)
        if booking_status not in self.open_statuses:
            raise InvalidTransitionError(
                booking_status.value,
                OPEN_EVENT,
                "extensions can only be requested while the vehicle is in service",
            )
        if not description or not description.strip():
            raise ValidationError("Extension description is required")
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationError(f"Invalid extension amount: {amount}") from None
        if not value.is_finite() or value <= 0:
            raise ValidationError("Extension amount must be greater than 0")
        if has_pending:
            raise ConflictError(
                "An extension is already awaiting customer approval for this booking"
            )
        return round_half_up(value)

    def resolve(
        self,
        current: ExtensionStatus,
        approve: bool,
        actor: Union[str, ActorRole] = ActorRole.CUSTOMER,
    ) -> ExtensionStatus:
        """Return the extension's next status."""
        current = ExtensionStatus(current)
        _permitted(actor, self.resolve_actors, current.value, RESOLVE_EVENT)
        if current is not ExtensionStatus.PENDING:
            raise ConflictError(f"Extension is already {current.value.lower()}")
        return ExtensionStatus.APPROVED if approve else ExtensionStatus.DECLINED

    @staticmethod
    def apply_to_total(
        total: Decimal, amount: Decimal, outcome: ExtensionStatus
    ) -> Decimal:
        """Booking total after *outcome*; only approval changes it."""
        if outcome is ExtensionStatus.APPROVED:
            return total + amount
        return total
