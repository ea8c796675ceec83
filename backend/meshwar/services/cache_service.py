"""
Redis caching service for the dashboard payload.

CACHING STRATEGY
================

What we cache:
  - The assembled dashboard payload, one entry per period (JSON-serialized)
  - Cache key pattern: "dashboard:{period}"

Why:
  - Building the dashboard runs a dozen count/aggregate queries
  - Admins reload it far more often than the figures change
  - The figures tolerate being a couple of minutes old

Invalidation strategy:
  - On any write that changes dashboard figures (users, locations,
    activities, bookings): delete all "dashboard:*" keys
  - On explicit request (POST /api/v1/dashboard/cache/clear)
  - TTL-based expiry as safety net (DASHBOARD_CACHE_TTL, 2 minutes)

Redis is optional. When REDIS_ENABLED is false or the server cannot be
reached, the cache is disabled and every call is a no-op returning None.
Cache errors are logged and never fail the request.

One DashboardCache is built in the application lifespan and stored on
app.state; routes receive it through the get_cache dependency.
"""

import json
from typing import Optional

import redis.asyncio as redis
from fastapi import Request

from meshwar.core.config import Settings
from meshwar.core.metrics import record_cache_operation
from meshwar.core.logging import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "dashboard:"


class DashboardCache:
    def __init__(self, client: Optional[redis.Redis] = None, ttl: int = 120):
        self.client = client
        self.ttl = ttl

    @classmethod
    async def connect(cls, settings: Settings) -> "DashboardCache":
        """Create the cache. Returns a disabled cache if Redis is off or down."""
        if not settings.REDIS_ENABLED:
            return cls(None, settings.DASHBOARD_CACHE_TTL)

        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        try:
            # Test connection
            await client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            await client.aclose()
            return cls(None, settings.DASHBOARD_CACHE_TTL)

        return cls(client, settings.DASHBOARD_CACHE_TTL)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def close(self) -> None:
        """Close Redis connection on shutdown."""
        if self.client:
            await self.client.aclose()
            self.client = None

    @staticmethod
    def make_key(period: str) -> str:
        return f"{KEY_PREFIX}{period}"

    async def get(self, period: str) -> Optional[dict]:
        """Retrieve the cached dashboard payload for a period."""
        if not self.client:
            return None

        key = self.make_key(period)
        try:
            data = await self.client.get(key)
            record_cache_operation("get", hit=data is not None)
            if data:
                logger.debug("cache_hit", key=key)
                return json.loads(data)
            logger.debug("cache_miss", key=key)
        except Exception as e:
            logger.error("cache_get_error", key=key, error=str(e))

        return None

    async def set(self, period: str, data: dict) -> None:
        """Cache a dashboard payload with TTL."""
        if not self.client:
            return

        key = self.make_key(period)
        try:
            await self.client.setex(key, self.ttl, json.dumps(data, default=str))
            logger.debug("cache_set", key=key, ttl=self.ttl)
        except Exception as e:
            logger.error("cache_set_error", key=key, error=str(e))

    async def invalidate(self) -> int:
        """
        Invalidate all cached dashboard payloads.
        Uses SCAN to find and delete all keys matching the prefix.
        """
        if not self.client:
            return 0

        deleted = 0
        try:
            async for key in self.client.scan_iter(match=f"{KEY_PREFIX}*", count=100):
                await self.client.delete(key)
                deleted += 1
            logger.info("cache_invalidated", keys_deleted=deleted)
        except Exception as e:
            logger.error("cache_invalidation_error", error=str(e))
        return deleted

    async def stats(self) -> dict:
        """Get Redis cache statistics for monitoring."""
        if not self.client:
            return {"status": "disabled"}

        try:
            info = await self.client.info("stats")
            hits = info.get("keyspace_hits", 0)
            misses = info.get("keyspace_misses", 0)
            return {
                "status": "connected",
                "hits": hits,
                "misses": misses,
                "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
            }
        except Exception as e:
            return {"status": "error", "error": str(e)}


def get_cache(request: Request) -> DashboardCache:
    return request.app.state.cache
