"""
Redis-based distributed lock.

Serialises writers on a single booking across API instances: every
mutating orchestrator call runs inside ``booking:<id>``'s lock.  The
optimistic ``version`` column on the booking row still catches writers
that bypass the lock.

Implementation uses SET NX EX for acquire and a Lua script for
atomic check-and-delete on release.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquiredError(RuntimeError):
    """Another holder owns the lock."""


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 10
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        released = await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        if not released:
            logger.warning("Lock %s expired before release", self.key)

    # context-manager support
    async def __aenter__(self):
        acquired = await self.acquire()
        if not acquired:
            raise LockNotAcquiredError(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()


def booking_lock_key(booking_id: int) -> str:
    return f"booking:{booking_id}"


def redis_lock_factory(
    client: aioredis.Redis, ttl_seconds: int = 10
) -> Callable[[str], DistributedLock]:
    """Build the ``lock_factory`` the orchestrator expects."""

    def factory(key: str) -> DistributedLock:
        return DistributedLock(client, key, ttl_seconds=ttl_seconds)

    return factory
