"""
Booking endpoints
=================

POST  /api/v1/bookings                       -- price services and create a booking
GET   /api/v1/bookings/{booking_id}          -- booking view with pending extension
GET   /api/v1/bookings/{booking_id}/history  -- applied status transitions
PATCH /api/v1/bookings/{booking_id}/status   -- apply a lifecycle event
POST  /api/v1/bookings/{booking_id}/extensions -- workshop proposes extra work
GET   /api/v1/bookings/{booking_id}/extensions -- all extensions, newest first
"""

from fastapi import APIRouter, Depends, Request

from autoconcierge.api.dependencies import get_orchestrator
from autoconcierge.api.middleware import limiter
from autoconcierge.api.schemas import (
    BookingCreatedResponse,
    BookingCreateRequest,
    BookingResponse,
    ErrorResponse,
    ExtensionCreateRequest,
    ExtensionResponse,
    StatusChangeResponse,
    StatusUpdateRequest,
)
from autoconcierge.config import settings
from autoconcierge.services.orchestrator import BookingOrchestrator

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=201,
    response_model=BookingCreatedResponse,
    summary="Create a booking",
    responses={
        400: {
            "model": ErrorResponse,
            "description": "Invalid vehicle, services, date or time slot.",
        },
        409: {"model": ErrorResponse, "description": "Pickup slot fully booked."},
    },
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    booking = await orchestrator.create_booking(
        customer_id=body.customer_id,
        vehicle=body.vehicle.to_domain(),
        service_types=body.service_types,
        pickup=body.pickup.to_domain(),
        delivery=body.delivery.to_domain() if body.delivery else None,
        customer_notes=body.customer_notes,
    )
    return BookingCreatedResponse(
        booking_id=booking.id,
        booking_number=booking.booking_number,
        total_price=booking.total_price,
        status=booking.status,
    )


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get booking status, price and pending extension",
)
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return BookingResponse.from_view(await orchestrator.booking_view(booking_id))


@router.get(
    "/{booking_id}/history",
    response_model=list[StatusChangeResponse],
    summary="Status transitions applied to a booking",
)
@limiter.limit(settings.rate_limit)
async def get_history(
    request: Request,
    booking_id: int,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.status_history(booking_id)


@router.patch(
    "/{booking_id}/status",
    response_model=BookingResponse,
    summary="Apply a lifecycle event",
    description=(
        "The event must be valid from the booking's current status, the "
        "acting role must be permitted and the event's guard must hold; "
        "otherwise 409 names the status, event and unmet guard."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Unknown booking."},
        409: {"model": ErrorResponse, "description": "Event rejected or concurrent write."},
    },
)
@limiter.limit(settings.rate_limit)
async def update_status(
    request: Request,
    booking_id: int,
    body: StatusUpdateRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.transition(booking_id, body.event, body.actor_role, body.payload())
    return BookingResponse.from_view(await orchestrator.booking_view(booking_id))


@router.post(
    "/{booking_id}/extensions",
    status_code=201,
    response_model=ExtensionResponse,
    summary="Propose additional work while the vehicle is in service",
    responses={
        409: {"model": ErrorResponse, "description": "Not in service or one already pending."},
    },
)
@limiter.limit(settings.rate_limit)
async def create_extension(
    request: Request,
    booking_id: int,
    body: ExtensionCreateRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.create_extension(
        booking_id, body.description, body.amount, body.actor_role
    )


@router.get(
    "/{booking_id}/extensions",
    response_model=list[ExtensionResponse],
    summary="List a booking's extensions",
)
@limiter.limit(settings.rate_limit)
async def list_extensions(
    request: Request,
    booking_id: int,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.list_extensions(booking_id)
