"""Redis client used for health reporting of the task-runner backend."""

import logging
from typing import Optional

import redis.asyncio as redis

from app.core.config import settings

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get (or lazily create) the shared Redis client."""
    global _client
    if _client is None:
        _client = redis.Redis.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            decode_responses=True,
        )
    return _client


async def ping_redis() -> bool:
    """True when Redis answers PING."""
    try:
        client = await get_redis()
        return bool(await client.ping())
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")
        return False


async def close_redis() -> None:
    """Close the shared Redis client (run on shutdown)."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
