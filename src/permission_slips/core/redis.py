"""
Redis connection used by the rate limiter.

Redis is optional. When it is down at startup or later, the rate limiter
counts requests in process memory instead.
"""

import logging

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from permission_slips.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect to Redis and publish the client once it answers a ping."""
    global redis_client
    client = from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    await client.ping()
    redis_client = client
    return redis_client


async def redis_status() -> dict[str, str]:
    """Report whether the rate limiter is backed by Redis right now."""
    if redis_client is None:
        return {"redis": "not initialized", "rate_limit_backend": "memory"}
    try:
        await redis_client.ping()
    except (RedisError, OSError) as e:
        logger.warning("Redis ping failed: %s", e)
        return {"redis": "error", "message": str(e), "rate_limit_backend": "memory"}
    return {"redis": "connected", "rate_limit_backend": "redis"}


async def close_redis() -> None:
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis connection closed")
