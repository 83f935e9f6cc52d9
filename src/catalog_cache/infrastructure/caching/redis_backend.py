# Copyright (c)
# SPDX-License-Identifier: MIT
"""Redis-backed persistent key/value store for cache entries.

Values are the JSON documents produced by the cache store. No Redis-side
expiry is set: the store decides liveness from the ``stored_at`` and
``ttl_s`` recorded in each entry when it rehydrates it.
"""

from __future__ import annotations

from typing import Any

from catalog_cache.infrastructure.caching.redis_client import RedisClient, get_redis_client
from catalog_cache.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)

_SCAN_COUNT = 500


class RedisKeyValueBackend:
    """:class:`KeyValueBackend` implementation over ``redis.asyncio``.

    Args:
        client: Redis client. When omitted the shared loop-aware client from
            :func:`get_redis_client` is resolved on every call.
        namespace: Optional prefix isolating this process's keys.
    """

    def __init__(self, client: RedisClient | None = None, *, namespace: str = "") -> None:
        self._client = client
        self._ns = namespace

    def _redis(self) -> RedisClient:
        return self._client if self._client is not None else get_redis_client()

    def _k(self, key: str) -> str:
        return f"{self._ns}{key}"

    async def get(self, key: str) -> str | None:
        raw: Any = await self._redis().get(self._k(key))
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

    async def set(self, key: str, value: str) -> None:
        await self._redis().set(self._k(key), value)

    async def delete(self, key: str) -> None:
        await self._redis().delete(self._k(key))

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key under ``prefix`` using SCAN (non-blocking for Redis)."""
        client = self._redis()
        batch: list[str] = []
        removed = 0
        async for key in client.scan_iter(match=f"{self._k(prefix)}*", count=_SCAN_COUNT):
            batch.append(key.decode("utf-8") if isinstance(key, bytes) else key)
            if len(batch) >= _SCAN_COUNT:
                removed += int(await client.delete(*batch) or 0)
                batch.clear()
        if batch:
            removed += int(await client.delete(*batch) or 0)
        logger.debug(
            "redis_backend.delete_prefix",
            extra={"extra": {"prefix": prefix, "removed": removed}},
        )
        return removed
