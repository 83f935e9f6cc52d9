# Copyright (c)
# SPDX-License-Identifier: MIT
"""Composition root for the catalog cache core.

Builds exactly one instance of each core component and wires them through
their constructors. Nothing in the core reads the environment or reaches for
a module-level singleton; whoever owns the process (the FastAPI lifespan,
an editor extension host, a test) calls :func:`build_cache_core` once and
hands the resulting :class:`CacheCore` to its adapters.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from catalog_cache.application.interfaces.kv_backend import KeyValueBackend
from catalog_cache.application.interfaces.resource_fetcher import ResourceFetchers
from catalog_cache.application.services.cache_store import CacheStore
from catalog_cache.application.services.prefetch_scheduler import (
    PrefetchOptions,
    PrefetchScheduler,
)
from catalog_cache.application.services.request_coordinator import RequestCoordinator
from catalog_cache.application.services.validation_reader import ValidationReader
from catalog_cache.application.use_cases.catalog_lookups import CatalogLookupService
from catalog_cache.config.settings import Settings
from catalog_cache.domain.enums.lookup import LookupType
from catalog_cache.infrastructure.caching.memory_backend import InMemoryKeyValueBackend
from catalog_cache.infrastructure.caching.redis_backend import RedisKeyValueBackend
from catalog_cache.infrastructure.caching.redis_client import get_redis_client
from catalog_cache.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)


@dataclass(frozen=True)
class CacheCore:
    """The wired core: one of each component, sharing store and coordinator."""

    store: CacheStore
    coordinator: RequestCoordinator
    scheduler: PrefetchScheduler
    reader: ValidationReader
    lookups: CatalogLookupService

    async def aclose(self) -> None:
        """Stop background prefetching and cancel in-flight fetches."""
        await self.scheduler.aclose()
        await self.coordinator.aclose()


def prefetch_options(settings: Settings) -> PrefetchOptions:
    """Map prefetch settings onto :class:`PrefetchOptions`."""
    return PrefetchOptions(
        concurrency=settings.prefetch_concurrency,
        retry_attempts=settings.prefetch_retry_attempts,
        retry_delay_s=settings.prefetch_retry_delay_s,
        throttle_interval_s=settings.prefetch_throttle_interval_s,
        item_delay_s=settings.prefetch_item_delay_s,
        max_items_per_type={
            LookupType.CATALOG: settings.prefetch_max_catalogs,
            LookupType.OFFERINGS: settings.prefetch_max_offerings,
            LookupType.FLAVORS: settings.prefetch_max_flavors,
        },
    )


def select_backend(settings: Settings) -> KeyValueBackend | None:
    """Pick the persistent backend for ``settings``.

    Returns ``None`` when persistence is disabled, a Redis backend when
    ``REDIS_URL`` is set and the in-memory backend otherwise.
    """
    if not settings.cache_persistence_enabled:
        return None
    if settings.redis_url:
        return RedisKeyValueBackend(get_redis_client(settings))
    return InMemoryKeyValueBackend()


def build_cache_core(
    settings: Settings,
    fetchers: ResourceFetchers,
    backend: KeyValueBackend | None = None,
    *,
    wall_clock: Callable[[], float] = time.time,
    monotonic_clock: Callable[[], float] = time.monotonic,
) -> CacheCore:
    """Build the cache core for one process.

    Args:
        settings: Resolved settings.
        fetchers: Fetch function per resource kind.
        backend: Persistent backend; ``None`` keeps the cache memory-only.
        wall_clock: Clock used for TTL expiry.
        monotonic_clock: Clock used for prefetch throttling.
    """
    store = CacheStore(
        settings.cache_policies(),
        backend,
        clock=wall_clock,
        max_entries=settings.cache_max_entries,
    )
    # Background passes wait for settlement; only explicit lookups time out.
    coordinator = RequestCoordinator()
    scheduler = PrefetchScheduler(
        store,
        coordinator,
        fetchers,
        prefetch_options(settings),
        clock=monotonic_clock,
    )
    reader = ValidationReader(store, prefetcher=scheduler)
    lookups = CatalogLookupService(
        store,
        coordinator,
        fetchers,
        validation=reader,
        prefetcher=scheduler,
        timeout_s=settings.coordinator_timeout_s,
    )
    logger.info(
        "core.built",
        extra={
            "extra": {
                "backend": type(backend).__name__ if backend is not None else None,
                "max_entries": settings.cache_max_entries,
                "prefetch_concurrency": settings.prefetch_concurrency,
            }
        },
    )
    return CacheCore(
        store=store,
        coordinator=coordinator,
        scheduler=scheduler,
        reader=reader,
        lookups=lookups,
    )


def get_cache_core(request: Request) -> CacheCore:
    """FastAPI dependency returning the core wired by the app lifespan."""
    core: CacheCore | None = getattr(request.app.state, "core", None)
    if core is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cache core is not initialized",
        )
    return core
