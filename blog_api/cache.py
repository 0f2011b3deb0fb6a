import json
import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Cache-aside store backed by Redis.

    Reads are best-effort: a failing or disabled Redis is reported as a
    miss, and a failed write-back is logged and dropped, because the
    caller already holds a valid result from the database.

    Invalidation is NOT best-effort.  ``delete`` and ``delete_pattern``
    propagate Redis errors so the mutation that triggered them fails
    instead of leaving entries that would stay stale until their TTL.
    """

    def __init__(self, url: str, client: redis.Redis | None = None) -> None:
        self.url = url
        self._redis: redis.Redis | None = client

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called from the application lifespan."""
        client = redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await client.ping()
        except redis.RedisError as exc:
            logger.warning("Redis unavailable at %s, cache disabled: %s", self.url, exc)
            await client.aclose()
            return
        self._redis = client
        logger.info("Redis connected: %s", self.url)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        """Return the decoded value stored under *key*, or None on a miss."""
        if self._redis is None:
            return None
        try:
            data = await self._redis.get(key)
        except redis.RedisError as exc:
            logger.warning("Cache GET failed for key=%r: %s", key, exc)
            return None
        if data is None:
            logger.debug("Cache miss: %s", key)
            return None
        try:
            value = json.loads(data)
        except ValueError as exc:
            logger.warning("Cache entry for key=%r is not valid JSON, ignoring: %s", key, exc)
            return None
        logger.debug("Cache hit: %s", key)
        return value

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        """
        Store *value* under *key* with an optional TTL in seconds.

        Only used for read-path write-back, so failures are logged and
        never reach the request.
        """
        if self._redis is None:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except redis.RedisError as exc:
            logger.warning("Cache SET failed for key=%r: %s", key, exc)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def delete(self, key: str) -> None:
        if self._redis is None:
            return
        await self._redis.delete(key)
        logger.debug("Cache invalidated key %r", key)

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching the glob *pattern*.

        Keys are collected with SCAN (never KEYS) and deleted afterwards.
        A key written by a concurrent request after the scan passed it
        survives; errors from Redis propagate to the caller.
        """
        if self._redis is None:
            return 0
        keys: list[str] = [key async for key in self._redis.scan_iter(match=pattern, count=100)]
        if keys:
            await self._redis.delete(*keys)
        logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        return len(keys)
