"""Domain error taxonomy.

The API layer maps each class to an HTTP status; the domain never catches
its own errors.
"""

from __future__ import annotations

from typing import Optional


class DomainError(Exception):
    """Base class for all business-rule violations."""


class ValidationError(DomainError):
    """Malformed input: out-of-range year / mileage, unknown service type, ..."""


class NotFoundError(DomainError):
    """Referenced booking, extension, user or vehicle does not exist."""


class PricingUnavailableError(DomainError):
    """No price derivable even from the default table (configuration bug)."""


class InvalidTransitionError(DomainError):
    """Lifecycle event not valid from the current status, or guard unmet."""

    def __init__(self, current: str, event: str, guard: Optional[str] = None):
        self.current = current
        self.event = event
        self.guard = guard
        message = f"Cannot apply '{event}' to booking in status {current}"
        if guard:
            message += f": {guard}"
        super().__init__(message)


class ConflictError(DomainError):
    """Write conflicts with existing state (duplicate pending extension, ...)."""


class StaleStateError(ConflictError):
    """Another writer changed the booking first; re-read and retry."""
