"""
Pricing endpoints
=================

POST /api/v1/pricing/calculate -- price one service for a vehicle
GET  /api/v1/pricing/services  -- service catalogue with default prices
"""

from fastapi import APIRouter, Depends, Request

from autoconcierge.api.dependencies import get_pricing_engine
from autoconcierge.api.middleware import limiter
from autoconcierge.api.schemas import (
    PriceCalculationRequest,
    PriceCalculationResponse,
    ServiceCatalogItem,
)
from autoconcierge.config import settings
from autoconcierge.domain.enums import DEFAULT_PRICES, SERVICE_CATALOG
from autoconcierge.domain.pricing import PricingEngine

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.post(
    "/calculate",
    response_model=PriceCalculationResponse,
    summary="Calculate the fixed price of a service",
    responses={400: {"description": "Invalid vehicle data or unknown service type."}},
)
@limiter.limit(settings.rate_limit)
async def calculate_price(
    request: Request,
    body: PriceCalculationRequest,
    engine: PricingEngine = Depends(get_pricing_engine),
):
    result = await engine.calculate_price(body.to_domain(), body.service_type)
    return PriceCalculationResponse.from_result(result)


@router.get(
    "/services",
    response_model=list[ServiceCatalogItem],
    summary="List bookable services",
)
async def list_services():
    return [
        ServiceCatalogItem(
            service_type=service,
            label=info.label,
            pricing_key=info.pricing_key,
            description=info.description,
            default_price=DEFAULT_PRICES[service],
        )
        for service, info in SERVICE_CATALOG.items()
    ]
