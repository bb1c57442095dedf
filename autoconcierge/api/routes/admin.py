"""
Admin / observability endpoints
===============================

GET /api/v1/admin/price-matrix/brands -- brands present in the rate table
GET /api/v1/admin/health              -- simple health check
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from autoconcierge.api.dependencies import get_db
from autoconcierge.api.middleware import limiter
from autoconcierge.api.schemas import HealthResponse
from autoconcierge.config import settings
from autoconcierge.infrastructure.repositories import PriceMatrixRepository

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/price-matrix/brands",
    response_model=list[str],
    summary="Brands with at least one price matrix entry",
)
@limiter.limit(settings.rate_limit)
async def list_price_matrix_brands(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    return await PriceMatrixRepository(db).list_brands()


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
