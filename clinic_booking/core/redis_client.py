"""Redis connection plus the throttling and caching helpers built on it.

Redis is an accelerator for the booking flow, never a dependency of its
correctness: every helper here fails open and logs instead of raising.
"""

import json
from typing import Any, cast

import redis
import structlog

from clinic_booking.config import settings

logger = structlog.get_logger()

# Process-wide client, created on first use
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """
    Get or create the shared Redis client.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=2,
            socket_timeout=2,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """Ping Redis; used by startup logging and the detailed health check."""
    try:
        return bool(get_redis_client().ping())
    except redis.RedisError:
        return False


def close_redis_connection() -> None:
    """Drop the shared client on shutdown."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class RateLimiter:
    """Fixed window request counter keyed by scope and client."""

    KEY_PREFIX = "rate_limit"

    def __init__(self, redis_client: redis.Redis):
        """Initialize rate limiter with Redis client."""
        self.redis = redis_client

    def hit(self, scope: str, client: str, limit: int, window: int = 60) -> bool:
        """
        Count one request and tell whether it fits in the current window.

        The window starts with the first request and lasts ``window`` seconds.
        The counter is created with its TTL in the same round trip as the
        increment, so a key can never be left without an expiry.

        Args:
            scope: Throttled operation, e.g. ``holds``
            client: Caller identity, usually the client host
            limit: Requests allowed per window
            window: Window length in seconds

        Returns:
            True if the request is allowed
        """
        key = f"{self.KEY_PREFIX}:{scope}:{client}"
        try:
            pipe = self.redis.pipeline()
            pipe.set(key, 0, ex=window, nx=True)
            pipe.incr(key)
            _, count = pipe.execute()
            count = int(count)
        except redis.RedisError as e:
            logger.warning("rate_limit_unavailable", scope=scope, error=str(e))
            return True

        if count > limit:
            logger.info("rate_limit_exceeded", scope=scope, client=client, count=count)
            return False
        return True


class CacheManager:
    """JSON cache for read-mostly reference data such as blocked dates."""

    def __init__(self, redis_client: redis.Redis):
        """Initialize cache manager with Redis client."""
        self.redis = redis_client

    def get_json(self, key: str) -> Any | None:
        """
        Get and deserialize a cached value.

        Args:
            key: Cache key

        Returns:
            Deserialized value, or None on a miss or a Redis failure
        """
        try:
            value = cast(str | None, self.redis.get(key))
        except redis.RedisError as e:
            logger.warning("cache_read_failed", key=key, error=str(e))
            return None

        if not value:
            return None
        try:
            return json.loads(value)
        except ValueError:
            logger.warning("cache_entry_corrupt", key=key)
            return None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Serialize and store a value.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live in seconds, no expiry when omitted

        Returns:
            True if the value was stored
        """
        payload = json.dumps(value, default=str)
        try:
            if ttl:
                self.redis.setex(key, ttl, payload)
            else:
                self.redis.set(key, payload)
        except redis.RedisError as e:
            logger.warning("cache_write_failed", key=key, error=str(e))
            return False
        return True

    def invalidate(self, prefix: str) -> int:
        """
        Delete every key under a prefix.

        Uses SCAN so a large keyspace does not block the server.

        Args:
            prefix: Key prefix without wildcard, e.g. ``blocked_dates``

        Returns:
            Number of keys deleted
        """
        try:
            keys = list(self.redis.scan_iter(match=f"{prefix}:*"))
            if not keys:
                return 0
            return int(cast(int, self.redis.delete(*keys)))
        except redis.RedisError as e:
            logger.warning("cache_invalidation_failed", prefix=prefix, error=str(e))
            return 0
