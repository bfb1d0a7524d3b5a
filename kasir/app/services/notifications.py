"""Best-effort notification sink for approval requests.

Events are published on a Redis channel; delivery to devices is handled by
whatever subscribes. A publish failure is logged and otherwise ignored, the
request it belongs to is already stored.
"""

from __future__ import annotations

import json
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

CHANNEL = "kasir:notifications"


async def notify(redis: Redis | None, event: str, payload: dict) -> bool:
    """Publish ``event`` with ``payload``; return whether it was sent."""

    if redis is None:
        return False
    try:
        await redis.publish(CHANNEL, json.dumps({"event": event, **payload}, default=str))
    except (RedisError, OSError) as exc:
        logger.warning("notification %s not published: %s", event, exc)
        return False
    return True


__all__ = ["CHANNEL", "notify"]
