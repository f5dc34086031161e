"""
Redis caching service for admin statistics.

CACHING STRATEGY
================

What we cache:
  - The admin statistics response (status counts, revenue, meal type counts,
    recent bookings), JSON-serialized under a single key.

Why:
  - The dashboard polls statistics; each request runs several aggregate
    queries over the whole bookings table.
  - Staleness is acceptable for a monitoring view, never for the booking
    state machine itself, which always reads the database.

Invalidation strategy:
  - Delete the key whenever a booking is created or changes status
    (cancel, payment webhook, admin update).
  - TTL-based expiry as safety net.

Redis is optional: when disabled or unreachable every call degrades to a
cache miss and the statistics are computed from the database.
"""

import json
from typing import Optional

import redis.asyncio as redis
from mess_booking.core.config import get_settings
from mess_booking.core.logging import get_logger
from mess_booking.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

STATISTICS_KEY = "admin:statistics"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            # Test connection
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


async def get_cached_statistics() -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(STATISTICS_KEY)
        record_cache_operation("get", hit=data is not None)
        if data:
            return json.loads(data)
    except Exception as e:
        logger.error("cache_get_error", key=STATISTICS_KEY, error=str(e))

    return None


async def set_cached_statistics(data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(STATISTICS_KEY, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=STATISTICS_KEY, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=STATISTICS_KEY, error=str(e))


async def invalidate_statistics_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.delete(STATISTICS_KEY)
        logger.debug("cache_invalidated", key=STATISTICS_KEY)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        return {
            "status": "connected",
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
