"""
Extension endpoints
===================

PATCH /api/v1/extensions/{extension_id} -- customer approves or declines
"""

from fastapi import APIRouter, Depends, Request

from autoconcierge.api.dependencies import get_orchestrator
from autoconcierge.api.middleware import limiter
from autoconcierge.api.schemas import (
    ErrorResponse,
    ExtensionResolveRequest,
    ExtensionResponse,
)
from autoconcierge.config import settings
from autoconcierge.services.orchestrator import BookingOrchestrator

router = APIRouter(prefix="/extensions", tags=["extensions"])


@router.patch(
    "/{extension_id}",
    response_model=ExtensionResponse,
    summary="Approve or decline a service extension",
    description=(
        "Approval adds the amount to the booking total and requests the "
        "extra payment.  Resolving an extension twice returns 409."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Unknown extension."},
        409: {"model": ErrorResponse, "description": "Already resolved."},
    },
)
@limiter.limit(settings.rate_limit)
async def resolve_extension(
    request: Request,
    extension_id: int,
    body: ExtensionResolveRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.resolve_extension(
        extension_id, body.approve, body.actor_role, body.reason
    )
