"""
Redis connection for shared, cross-replica counters.

Only the rate limiter talks to Redis. Timeouts are short so an
unreachable server surfaces as a RedisError quickly and the limiter
can fail open.
"""

import logging
import redis.asyncio as redis
from backend.app.core.config import settings

logger = logging.getLogger(__name__)


def build_redis(url: str) -> redis.Redis:
    return redis.from_url(
        url,
        decode_responses=settings.redis_decode_responses,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )


redis_client = build_redis(settings.redis_url)


async def get_redis():
    """FastAPI dependency returning the shared client."""
    return redis_client


async def ping_redis() -> bool:
    """True if Redis answers, False on any Redis error."""
    try:
        return await redis_client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False


async def close_redis() -> None:
    await redis_client.aclose()
