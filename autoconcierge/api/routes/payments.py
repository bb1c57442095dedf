"""
Payment signal endpoint
=======================

POST /api/v1/payments/confirmed -- payment provider reports a captured payment

Capture itself happens in the payment service; this only moves the
booking from PENDING_PAYMENT to CONFIRMED.  Replayed signals are accepted.
"""

from fastapi import APIRouter, Depends, Request

from autoconcierge.api.dependencies import get_orchestrator
from autoconcierge.api.middleware import limiter
from autoconcierge.api.schemas import BookingResponse, PaymentConfirmedRequest
from autoconcierge.config import settings
from autoconcierge.services.orchestrator import BookingOrchestrator

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/confirmed",
    response_model=BookingResponse,
    summary="Record a confirmed payment",
)
@limiter.limit(settings.rate_limit)
async def payment_confirmed(
    request: Request,
    body: PaymentConfirmedRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.on_payment_confirmed(body.booking_id)
    return BookingResponse.from_view(await orchestrator.booking_view(body.booking_id))
