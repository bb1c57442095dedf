"""
Outbound side channels: customer / jockey notifications and extension
payment requests.

Both are fire-and-forget from the booking core's point of view.  The
Redis implementations publish JSON that the delivery and payment services
consume; the orchestrator logs and drops any error they raise.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Protocol

import redis.asyncio as aioredis

from autoconcierge.domain.enums import NotificationKind

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(
        self, user_id: Optional[int], kind: NotificationKind, context: dict[str, Any]
    ) -> None: ...


class PaymentRequester(Protocol):
    async def request_extension_payment(
        self, booking_id: int, extension_id: int, amount: Decimal, currency: str
    ) -> None: ...


def _encode(payload: dict[str, Any]) -> str:
    return json.dumps(payload, default=str, separators=(",", ":"))


class RedisNotifier:
    """Publishes ``{"userId", "kind", "context", "sentAt"}`` to a pub/sub channel."""

    def __init__(self, client: aioredis.Redis, channel: str):
        self.redis = client
        self.channel = channel

    async def notify(self, user_id, kind, context) -> None:
        message = _encode(
            {
                "userId": user_id,
                "kind": NotificationKind(kind).value,
                "context": context,
                "sentAt": datetime.now(timezone.utc).isoformat(),
            }
        )
        receivers = await self.redis.publish(self.channel, message)
        logger.debug("Notification %s for user %s reached %s receivers",
                     kind, user_id, receivers)


class RedisPaymentRequester:
    """Queues an extension charge for the payment service (RPUSH)."""

    def __init__(self, client: aioredis.Redis, queue: str):
        self.redis = client
        self.queue = queue

    async def request_extension_payment(self, booking_id, extension_id, amount, currency) -> None:
        await self.redis.rpush(
            self.queue,
            _encode(
                {
                    "bookingId": booking_id,
                    "extensionId": extension_id,
                    "amount": str(amount),
                    "currency": currency,
                }
            ),
        )
        logger.info("Queued payment request for extension %s (%s %s)",
                    extension_id, amount, currency)
