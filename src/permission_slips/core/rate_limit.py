"""
Per-user sliding-window rate limits.

Counts live in a Redis sorted set per key when Redis is connected, and in
process memory otherwise (single instance only). The named policies guard
the endpoints that write signatures, fan out email to parents or change
review state. Idle keys are swept from the in-memory store.
"""

import logging
import time
from dataclasses import dataclass

from fastapi import HTTPException, status

from permission_slips.core import redis as redis_module

logger = logging.getLogger(__name__)

# key -> request timestamps inside the current window
_memory_store: dict[str, list[float]] = {}

# Keys with no request for this long are dropped from memory (longest supported window)
MEMORY_IDLE_SECONDS = 3600
_last_sweep = 0.0


@dataclass(frozen=True)
class RateLimit:
    name: str
    limit: int
    window_seconds: int


SIGN = RateLimit("sign", 10, 60)
DISTRIBUTE = RateLimit("distribute", 5, 60)
REVIEW = RateLimit("review", 20, 60)
REMIND = RateLimit("remind", 5, 60)


class RateLimitExceeded(HTTPException):
    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _allow_redis(client, key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, now - window_seconds)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)
    _, in_window, _, _ = await pipe.execute()
    return in_window < limit


def _sweep_memory(now: float) -> None:
    """Drop idle keys, at most once per MEMORY_IDLE_SECONDS."""
    global _last_sweep
    if now - _last_sweep < MEMORY_IDLE_SECONDS:
        return
    _last_sweep = now
    cutoff = now - MEMORY_IDLE_SECONDS
    idle = [key for key, stamps in _memory_store.items() if not stamps or stamps[-1] <= cutoff]
    for key in idle:
        del _memory_store[key]
    if idle:
        logger.debug(f"Dropped {len(idle)} idle rate limit key(s)")


def _allow_memory(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    _sweep_memory(now)
    recent = [ts for ts in _memory_store.get(key, []) if ts > now - window_seconds]
    allowed = len(recent) < limit
    if allowed:
        recent.append(now)
    _memory_store[key] = recent
    return allowed


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """Record a request under key and report whether it is within the limit."""
    client = redis_module.redis_client
    if client is not None:
        try:
            return await _allow_redis(client, f"rate_limit:{key}", limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")
    return _allow_memory(key, limit, window_seconds)


async def enforce(policy: RateLimit, user_id: str) -> None:
    """
    Count one request by user_id against policy.

    Raises:
        RateLimitExceeded: 429 once the user is over the policy's limit
    """
    if not await check_rate_limit(f"{policy.name}:{user_id}", policy.limit, policy.window_seconds):
        logger.warning(f"Rate limit '{policy.name}' exceeded by user {user_id}")
        raise RateLimitExceeded(policy.limit, policy.window_seconds)
