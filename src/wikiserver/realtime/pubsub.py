"""Redis pub/sub — page events for connected editors.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the message
is lost. That's fine for live editor updates: a client that missed a
page.saved event still sees the new content on its next load.

Redis is optional. When it isn't configured or is down, publish_event logs
and returns; the page save that triggered it has already succeeded.

Channel: wikiserver:events:pages
"""

import json
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from wikiserver.config import settings

logger = structlog.get_logger()

PAGES_CHANNEL = "wikiserver:events:pages"

PAGE_SAVED = "page.saved"

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection before handing it out
    await client.ping()
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


async def publish_event(event_type: str, data: dict[str, Any]) -> bool:
    """Publish a page event. Returns False when it could not be sent."""
    if _redis is None:
        logger.debug("realtime.publish_skipped", type=event_type)
        return False

    payload = json.dumps({"type": event_type, **data})
    try:
        await _redis.publish(PAGES_CHANNEL, payload)
    except RedisError as e:
        logger.warning("realtime.publish_failed", type=event_type, error=str(e))
        return False
    return True
