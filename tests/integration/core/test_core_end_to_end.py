from __future__ import annotations

import asyncio

import pytest

from catalog_cache.config.settings import Settings
from catalog_cache.dependencies.core import build_cache_core
from catalog_cache.domain.enums.lookup import ValidationTarget
from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.infrastructure.caching.memory_backend import InMemoryKeyValueBackend

DOCUMENT = {
    "products": [
        {
            "flavors": [
                {
                    "dependencies": [
                        {
                            "catalog_id": "cat-1",
                            "id": "off-1",
                            "flavors": ["standard", "quickstart"],
                        },
                        {"catalog_id": "cat-1", "id": "off-2", "flavors": ["basic"]},
                        {"catalog_id": "cat-gone", "id": "off-9", "flavors": ["x"]},
                    ]
                }
            ]
        }
    ]
}


def _settings() -> Settings:
    return Settings(
        _env_file=None,
        PREFETCH_THROTTLE_INTERVAL_S=0,
        PREFETCH_ITEM_DELAY_S=0,
        PREFETCH_RETRY_DELAY_S=0,
    )


async def _drain(core) -> None:
    for _ in range(5):
        if not (core.scheduler.queued_count or core.scheduler.is_running):
            return
        await core.scheduler.wait_for_pass()


@pytest.mark.asyncio
async def test_document_prefetch_then_restart_serves_from_backend(api, clock) -> None:
    backend = InMemoryKeyValueBackend()
    core = build_cache_core(_settings(), api.fetchers(), backend, wall_clock=clock)
    try:
        assert core.scheduler.analyze_and_enqueue(DOCUMENT) == 9
        await _drain(core)

        assert await core.reader.is_valid(ValidationTarget.CATALOG, "cat-1")
        assert await core.reader.is_valid(ValidationTarget.OFFERING, "cat-1", "off-2")
        assert await core.reader.is_valid(ValidationTarget.FLAVOR, "cat-1", "off-1", "quickstart")
        assert not await core.reader.is_valid(ValidationTarget.CATALOG, "cat-gone")
        # Children of an unknown catalog are pruned, never fetched.
        assert api.count(ResourceKind.OFFERING_DETAIL, "cat-gone", "off-9") == 0
    finally:
        await core.aclose()

    calls_before_restart = len(api.calls)
    clock.advance(60)

    restarted = build_cache_core(_settings(), api.fetchers(), backend, wall_clock=clock)
    try:
        assert await restarted.reader.is_valid(ValidationTarget.CATALOG, "cat-1")
        offerings = await restarted.lookups.get_offerings("cat-1")
        assert [o["id"] for o in offerings] == ["off-1", "off-2"]
        flavors = await restarted.lookups.get_flavors("cat-1", "off-1")
        assert flavors == ["standard", "quickstart"]
        assert len(api.calls) == calls_before_restart
    finally:
        await restarted.aclose()


@pytest.mark.asyncio
async def test_concurrent_explicit_lookups_share_one_fetch(api, clock) -> None:
    api.delay = 0.05
    core = build_cache_core(_settings(), api.fetchers(), None, wall_clock=clock)
    try:
        results = await asyncio.gather(*(core.lookups.get_offerings("cat-1") for _ in range(10)))
        assert all(r == results[0] for r in results)
        assert api.count(ResourceKind.OFFERING_LIST, "cat-1") == 1
    finally:
        await core.aclose()


@pytest.mark.asyncio
async def test_expired_entries_are_refetched(api, clock) -> None:
    core = build_cache_core(
        Settings(_env_file=None, CACHE_TTL_CATALOG_S=30), api.fetchers(), None, wall_clock=clock
    )
    try:
        await core.lookups.get_offerings("cat-1")
        clock.advance(29)
        await core.lookups.get_offerings("cat-1")
        assert api.count(ResourceKind.OFFERING_LIST, "cat-1") == 1
        clock.advance(2)
        await core.lookups.get_offerings("cat-1")
        assert api.count(ResourceKind.OFFERING_LIST, "cat-1") == 2
    finally:
        await core.aclose()
