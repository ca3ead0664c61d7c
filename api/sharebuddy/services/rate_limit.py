"""Rate limiting service using Redis."""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from ..cache import get_redis_client

logger = logging.getLogger(__name__)


def check_rate_limit(key: str, limit: int, window_seconds: int = 60) -> tuple[bool, int]:
    """
    Check and increment rate limit counter.

    Uses Redis INCR with EXPIRE for fixed window rate limiting.

    Args:
        key: Redis key for the rate limit counter (e.g., "ratelimit:login:{ip}")
        limit: Maximum number of requests allowed in the window
        window_seconds: Time window in seconds (default: 60)

    Returns:
        Tuple of (allowed, remaining)
    """
    client = get_redis_client()

    # Fail open when Redis is unavailable
    if not client:
        return True, limit

    try:
        current = client.get(key)
        count = int(current) if current else 0

        if count >= limit:
            return False, 0

        pipe = client.pipeline()
        pipe.incr(key)
        pipe.expire(key, window_seconds)
        results = pipe.execute()

        new_count = results[0]
        return True, max(0, limit - new_count)

    except Exception as e:
        logger.error(f"Rate limit check error for key '{key}': {e}")
        return True, limit


def client_ip(request: Request) -> str:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def enforce_rate_limit(request: Request, bucket: str, limit: int, window_seconds: int = 60) -> None:
    """Raise 429 when the caller's IP has exhausted ``bucket``."""
    allowed, _ = check_rate_limit(f"ratelimit:{bucket}:{client_ip(request)}", limit, window_seconds)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
        )
