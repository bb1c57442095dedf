"""FastAPI dependency injection helpers."""

import redis.asyncio as aioredis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from autoconcierge.config import settings
from autoconcierge.domain.pricing import PricingEngine
from autoconcierge.infrastructure.database import async_session_factory
from autoconcierge.infrastructure.locks import redis_lock_factory
from autoconcierge.infrastructure.notifications import (
    RedisNotifier,
    RedisPaymentRequester,
)
from autoconcierge.infrastructure.redis_client import get_redis
from autoconcierge.infrastructure.repositories import PriceMatrixRepository
from autoconcierge.services.orchestrator import BookingOrchestrator


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_pricing_engine(db: AsyncSession = Depends(get_db)) -> PricingEngine:
    return PricingEngine(PriceMatrixRepository(db))


async def get_orchestrator(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> BookingOrchestrator:
    """Request-scoped orchestrator wired to the shared Redis pool."""
    return BookingOrchestrator(
        db,
        notifier=RedisNotifier(redis, settings.notification_channel),
        payments=RedisPaymentRequester(redis, settings.payment_request_queue),
        lock_factory=redis_lock_factory(redis, settings.booking_lock_ttl_seconds),
    )
