# Copyright (c)
# SPDX-License-Identifier: MIT
"""Read-through composition of the cache store and the request coordinator.

Synopsis:
    ``fetch_through`` is the single call-site pattern for "cached, otherwise
    fetch once and populate": the store is checked first, then concurrent
    misses for the same key share one coordinated load that writes the
    result back before settling.

Layer:
    application/services
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from catalog_cache.application.services.cache_store import CacheStore
from catalog_cache.application.services.request_coordinator import RequestCoordinator
from catalog_cache.domain.value_objects.cache_key import CacheKey
from catalog_cache.domain.value_objects.cache_policy import CachePolicy

__all__ = ["fetch_through"]


async def fetch_through(
    store: CacheStore,
    coordinator: RequestCoordinator,
    key: CacheKey,
    produce: Callable[[], Awaitable[Any]],
    *,
    policy: CachePolicy | None = None,
    timeout_s: float | None = None,
) -> Any | None:
    """Return the cached value for ``key`` or load it once via the coordinator.

    Args:
        store: Shared cache store.
        coordinator: Shared request coordinator.
        key: Cache key; also the dedup key.
        produce: Zero-arg fetch coroutine function called on a miss.
        policy: Policy override; defaults to the kind's registered policy.
        timeout_s: Per-caller wait limit for the coordinated load.

    Returns:
        The cached or freshly fetched value. ``None`` results are returned
        but not cached.
    """
    cached = await store.get(key, policy)
    if cached is not None:
        return cached

    async def _load() -> Any | None:
        # An operation that settled just before this one may have filled it.
        hit = await store.get(key, policy)
        if hit is not None:
            return hit
        value = await produce()
        if value is not None:
            await store.set(key, value, policy)
        return value

    return await coordinator.coordinate(key, _load, timeout_s=timeout_s)
