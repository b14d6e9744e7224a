"""
Cache Backends

Key-value backends behind the document cache. The cache is best-effort:
the server is fully functional without it.

Two implementations share one interface and are selected once at startup:

- `RedisCacheBackend`: every call carries a short timeout; any Redis error,
  socket error or timeout is logged and reported as a miss / failed write.
  Nothing is raised to the caller and nothing is retried.
- `DisabledCacheBackend`: always absent, every write a no-op.

Callers therefore never branch on cache availability.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, List, Optional, Protocol, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger("rulebook.cache")

SCAN_PAGE_SIZE = 100

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_by_prefix(self, prefix: str) -> bool: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class DisabledCacheBackend:
    """Backend used when no cache is configured: always a miss."""

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        return False

    async def delete(self, key: str) -> bool:
        return True

    async def delete_by_prefix(self, prefix: str) -> bool:
        return True

    async def ping(self) -> bool:
        return False

    async def close(self) -> None:
        return None


class RedisCacheBackend:
    """
    Redis-backed cache with graceful degradation.

    Parameters
    ----------
    client : Redis
        An asyncio Redis client created with `decode_responses=True`.

    timeout : float
        Upper bound in seconds for each individual Redis round trip.
    """

    def __init__(self, client: Redis, timeout: float = 0.5) -> None:
        self._client = client
        self.timeout = timeout

    @classmethod
    def from_url(cls, url: str, timeout: float = 0.5) -> "RedisCacheBackend":
        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        return cls(client, timeout=timeout)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        ok, value = await self._guard("GET", key, self._client.get(key))
        if not ok:
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        ok, _ = await self._guard(
            "SET",
            key,
            self._client.set(key, value, ex=ttl_seconds),
        )
        return ok

    async def delete(self, key: str) -> bool:
        ok, _ = await self._guard("DEL", key, self._client.delete(key))
        return ok

    async def delete_by_prefix(self, prefix: str) -> bool:
        """
        Delete every key starting with `prefix`.

        Walks the keyspace page by page with SCAN (never KEYS, which blocks
        the server) and deletes each page as it arrives. Each round trip has
        its own timeout.
        """
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        cursor = 0
        deleted = 0

        while True:
            ok, page = await self._guard(
                "SCAN",
                pattern,
                self._client.scan(cursor=cursor, match=pattern, count=SCAN_PAGE_SIZE),
            )
            if not ok:
                return False

            cursor, page_keys = page
            keys: List[str] = list(page_keys)

            if keys:
                ok, _ = await self._guard("DEL", pattern, self._client.delete(*keys))
                if not ok:
                    return False
                deleted += len(keys)

            if int(cursor) == 0:
                break

        logger.debug("Deleted %d cache keys matching %s", deleted, pattern)
        return True

    async def ping(self) -> bool:
        ok, value = await self._guard("PING", "-", self._client.ping())
        return ok and bool(value)

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            logger.warning("Closing Redis client failed: %s", exc)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _guard(
        self,
        operation: str,
        key: str,
        awaitable: Awaitable[Any],
    ) -> Tuple[bool, Any]:
        try:
            return True, await asyncio.wait_for(awaitable, self.timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Redis %s failed (%s) for %s: %s",
                operation,
                type(exc).__name__,
                key,
                exc,
            )
            return False, None


def create_cache_backend(
    redis_url: Optional[str],
    timeout: float = 0.5,
) -> CacheBackend:
    """
    Pick the cache implementation for this process.

    No URL disables caching; a URL that cannot be parsed is logged and also
    disables caching rather than failing startup.
    """
    if not redis_url:
        logger.info("No REDIS_URL configured, running without cache")
        return DisabledCacheBackend()

    try:
        return RedisCacheBackend.from_url(redis_url, timeout=timeout)
    except (ValueError, RedisError) as exc:
        logger.warning("Failed to create Redis client, cache disabled: %s", exc)
        return DisabledCacheBackend()
