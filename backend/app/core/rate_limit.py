"""
Shared rate limiting.

Fixed-window counters kept in Redis, shared by every replica.
"""

import logging
import time
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Request

from backend.app.core.config import settings
from backend.app.core.exceptions import RateLimitExceededError
from backend.app.core.redis_client import get_redis

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "ratelimit:"


def client_key(request: Request) -> str:
    """
    Address to count requests against.

    X-Forwarded-For is only believed when the direct peer is a configured
    trusted proxy; the nearest hop not itself a trusted proxy is used.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = set(settings.trusted_proxies)
    if peer not in trusted:
        return peer
    forwarded = request.headers.get("X-Forwarded-For", "")
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return peer


async def hit(
    redis_conn,
    scope: str,
    identity: str,
    limit: int,
    window_seconds: int,
    now: Optional[float] = None
) -> int:
    """
    Count one request against (scope, identity) in the current window.
    
    Returns:
        The request count in this window so far
    
    Raises:
        RateLimitExceededError: count went over limit
    """
    now = now if now is not None else time.time()
    window = int(now // window_seconds)
    key = f"{RATE_LIMIT_PREFIX}{scope}:{identity}:{window}"
    
    count = await redis_conn.incr(key)
    if count == 1:
        await redis_conn.expire(key, window_seconds)
    
    if count > limit:
        retry_after = window_seconds - int(now % window_seconds)
        logger.warning("Rate limit hit for %s on %s (%s/%s)", identity, scope, count, limit)
        raise RateLimitExceededError(scope, retry_after)
    return count


def rate_limit(scope: str, limit: int, window_seconds: int):
    """
    Dependency factory for per-client rate limits.
    
    Usage:
        @router.post("/bookings", dependencies=[Depends(rate_limit("booking_create", 10, 60))])
    
    Fails open when Redis is unreachable.
    """
    async def limiter(request: Request, redis_conn=Depends(get_redis)) -> None:
        try:
            await hit(redis_conn, scope, client_key(request), limit, window_seconds)
        except redis.RedisError as exc:
            logger.warning("Rate limiter unavailable for %s, allowing request: %s", scope, exc)
    
    return limiter
