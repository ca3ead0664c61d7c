"""Redis cache utility functions."""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any

import redis

logger = logging.getLogger(__name__)

# Redis connection
_redis_client: redis.Redis | None = None
# Monotonic time before which a failed connection is not retried
_retry_after: float = 0.0
_RETRY_INTERVAL_S = 30.0


def get_redis_client() -> redis.Redis | None:
    """
    Get or create Redis client instance.

    Returns None if Redis is unreachable. A failed connection is retried at
    most every 30 seconds.
    """
    global _redis_client, _retry_after

    if _redis_client is not None:
        return _redis_client

    if time.monotonic() < _retry_after:
        return None

    try:
        redis_url = os.getenv("REDIS_URL") or os.getenv("CELERY_BROKER_URL", "redis://cache:6379/0")
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1,
        )
        client.ping()
        _redis_client = client
        logger.info("Redis cache connected successfully")
        return _redis_client
    except Exception as e:
        _retry_after = time.monotonic() + _RETRY_INTERVAL_S
        logger.warning(f"Redis cache unavailable: {e}. Continuing without cache.")
        return None


def cache_get(key: str) -> Any | None:
    """
    Retrieve a cached value by key.

    Args:
        key: Cache key

    Returns:
        Cached value if found, None otherwise
    """
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
        if value is None:
            return None

        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return value
    except Exception as e:
        logger.warning(f"Cache get error for key '{key}': {e}")
        return None


def cache_set(key: str, value: Any, ttl: int = 300) -> bool:
    """
    Set a cached value with TTL.

    Args:
        key: Cache key
        value: Value to cache (JSON-serialized if dict/list)
        ttl: Time to live in seconds (default: 300 = 5 minutes)

    Returns:
        True if successful, False otherwise
    """
    client = get_redis_client()
    if not client:
        return False

    try:
        if isinstance(value, (dict, list)):
            serialized = json.dumps(value, default=str)
        else:
            serialized = str(value)

        client.setex(key, ttl, serialized)
        return True
    except Exception as e:
        logger.warning(f"Cache set error for key '{key}': {e}")
        return False


def cache_invalidate(pattern: str) -> int:
    """
    Invalidate cache entries matching a pattern.

    Args:
        pattern: Redis key pattern (e.g., "feed:trending:*")

    Returns:
        Number of keys deleted
    """
    client = get_redis_client()
    if not client:
        return 0

    try:
        keys = list(client.scan_iter(match=pattern))
        if not keys:
            return 0

        deleted = client.delete(*keys)
        logger.info(f"Invalidated {deleted} cache entries matching pattern '{pattern}'")
        return deleted
    except Exception as e:
        logger.warning(f"Cache invalidate error for pattern '{pattern}': {e}")
        return 0


def cache_delete(key: str) -> bool:
    """
    Delete a specific cache key.
    """
    client = get_redis_client()
    if not client:
        return False

    try:
        return bool(client.delete(key))
    except Exception as e:
        logger.warning(f"Cache delete error for key '{key}': {e}")
        return False
