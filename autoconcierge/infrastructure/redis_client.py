"""
Shared Redis connection pool.

Booking locks, the notification publisher and the payment request queue
all draw clients from this one pool; the app lifespan disconnects it on
shutdown.
"""

import logging

import redis.asyncio as aioredis

from autoconcierge.config import settings

logger = logging.getLogger(__name__)

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url,
    decode_responses=True,
    socket_timeout=settings.redis_socket_timeout,
)


async def get_redis() -> aioredis.Redis:
    """Request-scoped client on the shared pool (FastAPI dependency)."""
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    await _pool.disconnect()
    logger.info("Redis connection pool closed")
