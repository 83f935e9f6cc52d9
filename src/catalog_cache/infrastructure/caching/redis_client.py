# Copyright (c)
# SPDX-License-Identifier: MIT
"""Shared async Redis connection for the persistent cache backend.

The persistent layer needs five commands (``get``, ``set``, ``delete``,
``scan_iter`` and ``aclose``), so the client is typed against a narrow
protocol rather than the full redis-py surface.

redis-py connection pools are bound to the event loop that created them. The
module keeps one client and remembers which loop it belongs to; asking for the
client from a different loop (a fresh TestClient, a new ``asyncio.run``)
builds a new one. A fakeredis instance placed in ``_client`` is returned
unconditionally, since it has no loop affinity.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any, Protocol, cast, runtime_checkable

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError

from catalog_cache.config.settings import Settings, get_settings
from catalog_cache.infrastructure.logging.logger import get_json_logger

__all__ = [
    "RedisClient",
    "close_redis",
    "get_redis_client",
    "init_redis",
]

logger = get_json_logger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


@runtime_checkable
class RedisClient(Protocol):
    """The slice of redis-py used by the persistent cache backend."""

    async def get(self, key: str) -> Any: ...
    async def set(self, key: str, value: Any) -> Any: ...
    async def delete(self, *keys: str) -> Any: ...
    def scan_iter(self, match: str | None = None, count: int | None = None) -> AsyncIterator[Any]: ...
    async def aclose(self) -> None: ...


_client: RedisClient | Any | None = None
_client_loop_id: int | None = None


def _loop_id() -> int | None:
    try:
        return id(asyncio.get_running_loop())
    except RuntimeError:
        return None


def _is_fake(client: Any) -> bool:
    return client is not None and type(client).__module__.startswith("fakeredis")


def _build(settings: Settings) -> Any:
    url = str(settings.redis_url or DEFAULT_REDIS_URL)
    logger.info("redis.client_created", extra={"extra": {"loop_bound": _loop_id() is not None}})
    return aioredis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=settings.redis_health_check_interval_s,
        socket_timeout=settings.redis_socket_timeout_s,
        socket_connect_timeout=settings.redis_socket_connect_timeout_s,
    )


def init_redis(settings: Settings) -> None:
    """Create the shared client for the running loop unless one already serves it."""
    global _client, _client_loop_id

    if _is_fake(_client):
        return
    current = _loop_id()
    if _client is not None and _client_loop_id == current:
        return
    # The stale client is abandoned rather than closed: its loop may be gone.
    _client = _build(settings)
    _client_loop_id = current


async def close_redis() -> None:
    """Close the shared client if it belongs to the running loop, then forget it."""
    global _client, _client_loop_id

    client, owner = _client, _client_loop_id
    _client = None
    _client_loop_id = None

    if client is None or _is_fake(client):
        return
    if owner is not None and owner != _loop_id():
        return
    try:
        await client.aclose()
    except (RuntimeError, RedisConnectionError) as exc:
        logger.warning("redis.close_failed", extra={"extra": {"error": str(exc)}})


def get_redis_client(settings: Settings | None = None) -> RedisClient:
    """Return the shared client, building it for the running loop when needed.

    Raises:
        RuntimeError: No client could be created.
    """
    if _is_fake(_client):
        return cast(RedisClient, _client)

    current = _loop_id()
    stale = _client_loop_id is not None and current is not None and current != _client_loop_id
    if _client is None or stale:
        init_redis(settings or get_settings())

    if _client is None:
        raise RuntimeError("redis client could not be initialized")
    return cast(RedisClient, _client)
