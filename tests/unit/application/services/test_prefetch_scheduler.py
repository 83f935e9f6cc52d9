from __future__ import annotations

import asyncio
import time
from dataclasses import replace

import pytest

from catalog_cache.application.services.cache_store import CacheStore
from catalog_cache.application.services import prefetch_scheduler as scheduler_module
from catalog_cache.application.services.prefetch_scheduler import (
    PrefetchOptions,
    PrefetchScheduler,
)
from catalog_cache.application.services.read_through import fetch_through
from catalog_cache.application.services.request_coordinator import RequestCoordinator
from catalog_cache.application.services.validation_reader import (
    ValidationReader,
    store_validation,
)
from catalog_cache.domain.entities.lookup_item import LookupItem
from catalog_cache.domain.enums.lookup import ItemState, LookupType, ValidationTarget
from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.domain.exceptions.catalog import CatalogApiUnavailable, CatalogAuthError
from catalog_cache.domain.value_objects.cache_key import CacheKey


@pytest.mark.asyncio
async def test_enqueue_is_idempotent_and_skips_cached_items(
    scheduler: PrefetchScheduler, api
) -> None:
    item = LookupItem.offering("cat-1", "off-1")
    assert scheduler.enqueue(item) is True
    assert scheduler.enqueue(LookupItem.offering("cat-1", "off-1", priority=0)) is False
    assert scheduler.queued_count == 1

    report = await scheduler.wait_for_pass()

    assert report.processed == 1
    assert report.cached == 1
    assert scheduler.item_state(item) is ItemState.CACHED
    assert scheduler.enqueue(item) is False
    assert api.count(ResourceKind.OFFERING_DETAIL) == 1


@pytest.mark.asyncio
async def test_offering_pass_caches_detail_flavors_and_verdict(
    scheduler: PrefetchScheduler, store: CacheStore, api
) -> None:
    scheduler.enqueue(LookupItem.offering("cat-1", "off-1"))
    await scheduler.wait_for_pass()

    assert store.peek(CacheKey.of(ResourceKind.OFFERING_DETAIL, "cat-1", "off-1"))["id"] == "off-1"
    assert store.peek(CacheKey.of(ResourceKind.FLAVOR_LIST, "cat-1", "off-1")) == [
        "standard",
        "quickstart",
    ]
    reader = ValidationReader(store)
    assert await reader.is_valid(ValidationTarget.OFFERING, "cat-1", "off-1")
    assert api.count(ResourceKind.FLAVOR_LIST) == 0


@pytest.mark.asyncio
async def test_pass_volume_is_bounded_per_type(store: CacheStore, api) -> None:
    api.default_document = {"name": "generic", "kinds": []}
    coordinator = RequestCoordinator()
    options = PrefetchOptions(
        retry_delay_s=0.0,
        throttle_interval_s=3600.0,
        item_delay_s=0.0,
        max_items_per_type={LookupType.OFFERINGS: 50},
    )
    scheduler = PrefetchScheduler(store, coordinator, api.fetchers(), options)
    try:
        for i in range(500):
            scheduler.enqueue(LookupItem.offering("cat-1", f"bulk-{i}"))

        report = await scheduler.wait_for_pass()

        assert report.processed == 50
        assert report.deferred == 450
        assert api.count(ResourceKind.OFFERING_DETAIL) == 50
        assert scheduler.queued_count == 450
        # Lowest sequence numbers go first within a priority.
        assert scheduler.item_state(LookupItem.offering("cat-1", "bulk-0")) is ItemState.CACHED
        assert scheduler.item_state(LookupItem.offering("cat-1", "bulk-499")) is ItemState.QUEUED
    finally:
        await scheduler.aclose()
        await coordinator.aclose()


@pytest.mark.asyncio
async def test_one_failing_item_does_not_abort_the_pass(
    scheduler: PrefetchScheduler, api
) -> None:
    api.default_document = {"name": "generic", "kinds": []}
    api.fail(ResourceKind.OFFERING_DETAIL, "cat-1", "broken", exc=CatalogApiUnavailable())
    for off in ("off-1", "broken", "off-2"):
        scheduler.enqueue(LookupItem.offering("cat-1", off))

    report = await scheduler.wait_for_pass()

    assert report.processed == 3
    assert report.cached == 2
    assert report.dropped == 1
    assert report.retried == 2
    assert api.count(ResourceKind.OFFERING_DETAIL, "cat-1", "broken") == 3
    assert scheduler.item_state(LookupItem.offering("cat-1", "broken")) is ItemState.DROPPED
    assert scheduler.item_state(LookupItem.offering("cat-1", "off-2")) is ItemState.CACHED


@pytest.mark.asyncio
async def test_transient_failure_is_retried_until_it_succeeds(
    scheduler: PrefetchScheduler, api
) -> None:
    api.fail(ResourceKind.OFFERING_DETAIL, "cat-1", "off-1", exc=CatalogApiUnavailable(), times=1)
    scheduler.enqueue(LookupItem.offering("cat-1", "off-1"))

    report = await scheduler.wait_for_pass()

    assert report.cached == 1
    assert report.retried == 1
    assert api.count(ResourceKind.OFFERING_DETAIL) == 2


@pytest.mark.asyncio
async def test_terminal_failure_is_not_retried(scheduler: PrefetchScheduler, api) -> None:
    api.fail(ResourceKind.OFFERING_DETAIL, "cat-1", "off-1", exc=CatalogAuthError())
    scheduler.enqueue(LookupItem.offering("cat-1", "off-1"))

    report = await scheduler.wait_for_pass()

    assert report.dropped == 1
    assert report.retried == 0
    assert api.count(ResourceKind.OFFERING_DETAIL) == 1


@pytest.mark.asyncio
async def test_unknown_catalog_is_recorded_invalid(
    scheduler: PrefetchScheduler, store: CacheStore
) -> None:
    scheduler.enqueue(LookupItem.catalog("missing"))
    report = await scheduler.wait_for_pass()

    assert report.dropped == 1
    record = await ValidationReader(store).get_validation(ValidationTarget.CATALOG, "missing")
    assert record is not None
    assert record.valid is False
    assert record.error == "Catalog ID not found"


@pytest.mark.asyncio
async def test_children_of_invalid_parents_are_pruned(
    scheduler: PrefetchScheduler, store: CacheStore, api
) -> None:
    await store_validation(store, ValidationTarget.CATALOG, ["cat-x"], False)
    await store_validation(store, ValidationTarget.OFFERING, ["cat-1", "gone"], False)
    scheduler.enqueue(LookupItem.offering("cat-x", "off-1"))
    scheduler.enqueue(LookupItem.flavor("cat-1", "gone", "standard"))

    report = await scheduler.wait_for_pass()

    assert report.pruned == 2
    assert api.calls == []


@pytest.mark.asyncio
async def test_catalog_failure_prunes_its_children_in_the_same_pass(
    scheduler: PrefetchScheduler, api
) -> None:
    scheduler.enqueue(LookupItem.flavor("missing", "off-1", "standard"))
    scheduler.enqueue(LookupItem.offering("missing", "off-1"))
    scheduler.enqueue(LookupItem.catalog("missing"))

    report = await scheduler.wait_for_pass()

    assert report.processed == 3
    assert report.dropped == 1
    assert report.pruned == 2
    assert api.count(ResourceKind.OFFERING_DETAIL) == 0
    assert api.count(ResourceKind.FLAVOR_DETAIL) == 0


@pytest.mark.asyncio
async def test_unknown_flavor_is_recorded_invalid(
    scheduler: PrefetchScheduler, store: CacheStore
) -> None:
    scheduler.enqueue(LookupItem.flavor("cat-1", "off-1", "does-not-exist"))
    report = await scheduler.wait_for_pass()

    assert report.dropped == 1
    record = await ValidationReader(store).get_validation(
        ValidationTarget.FLAVOR, "cat-1", "off-1", "does-not-exist"
    )
    assert record is not None and record.valid is False


@pytest.mark.asyncio
async def test_background_and_explicit_fetch_share_one_call(
    scheduler: PrefetchScheduler, store: CacheStore, coordinator: RequestCoordinator, api
) -> None:
    api.delay = 0.05
    scheduler.enqueue(LookupItem.offering("cat-1", "off-1"))
    key = CacheKey.of(ResourceKind.OFFERING_DETAIL, "cat-1", "off-1")

    async def explicit() -> object:
        return await fetch_through(
            store, coordinator, key, lambda: api.offering_detail("cat-1", "off-1")
        )

    _, doc = await asyncio.gather(scheduler.wait_for_pass(), explicit())

    assert doc["id"] == "off-1"
    assert api.count(ResourceKind.OFFERING_DETAIL) == 1


@pytest.mark.asyncio
async def test_analyze_and_enqueue_runs_parents_before_children(
    scheduler: PrefetchScheduler, store: CacheStore
) -> None:
    document = {
        "dependencies": [
            {"catalog_id": "cat-1", "id": "off-1", "flavors": ["standard"]},
        ]
    }
    assert scheduler.analyze_and_enqueue(document) == 3

    report = await scheduler.wait_for_pass()

    assert report.cached == 3
    reader = ValidationReader(store)
    assert await reader.is_valid(ValidationTarget.CATALOG, "cat-1")
    assert await reader.is_valid(ValidationTarget.FLAVOR, "cat-1", "off-1", "standard")


@pytest.mark.asyncio
async def test_requests_during_a_pass_fold_into_one_follow_up(
    scheduler: PrefetchScheduler, api
) -> None:
    api.delay = 0.02
    scheduler.enqueue(LookupItem.offering("cat-1", "off-1"))
    await asyncio.sleep(0)
    assert scheduler.is_running

    scheduler.enqueue(LookupItem.offering("cat-1", "off-2"))
    first = await scheduler.wait_for_pass()
    second = await scheduler.wait_for_pass()

    assert first.processed == 1
    assert second.processed == 1
    assert api.count(ResourceKind.OFFERING_DETAIL) == 2


@pytest.mark.asyncio
async def test_wait_for_pass_with_nothing_queued_returns_empty_report(
    scheduler: PrefetchScheduler,
) -> None:
    report = await scheduler.wait_for_pass()
    assert report.processed == 0


@pytest.mark.asyncio
async def test_closed_scheduler_ignores_new_items(scheduler: PrefetchScheduler) -> None:
    await scheduler.aclose()
    assert scheduler.enqueue(LookupItem.catalog("cat-1")) is False
    assert scheduler.queued_count == 0


def test_enqueue_without_a_running_loop_keeps_the_item(store, coordinator, api) -> None:
    scheduler = PrefetchScheduler(store, coordinator, api.fetchers())
    assert scheduler.enqueue(LookupItem.catalog("cat-1")) is True
    assert scheduler.queued_count == 1
    assert not scheduler.is_running


def test_options_validate_their_bounds() -> None:
    with pytest.raises(ValueError):
        PrefetchOptions(concurrency=0)
    with pytest.raises(ValueError):
        PrefetchOptions(item_delay_s=-1)
    assert PrefetchOptions().cap_for(LookupType.OFFERINGS) == 20


@pytest.mark.asyncio
async def test_first_pass_is_immediate_and_the_next_waits_out_the_interval(
    store: CacheStore, coordinator: RequestCoordinator, api, fast_options: PrefetchOptions
) -> None:
    interval = 0.3
    options = replace(fast_options, throttle_interval_s=interval)
    scheduler = PrefetchScheduler(store, coordinator, api.fetchers(), options)
    try:
        started = time.monotonic()
        scheduler.enqueue(LookupItem.offering("cat-1", "off-1"))
        first = await scheduler.wait_for_pass()
        first_done = time.monotonic() - started

        scheduler.enqueue(LookupItem.offering("cat-1", "off-2"))
        await asyncio.sleep(0.05)
        assert api.count(ResourceKind.OFFERING_DETAIL, "cat-1", "off-2") == 0

        second = await scheduler.wait_for_pass()
        second_done = time.monotonic() - started

        assert first.processed == 1
        assert first_done < interval
        assert second.processed == 1
        assert second_done >= interval - 0.01
        assert api.count(ResourceKind.OFFERING_DETAIL, "cat-1", "off-2") == 1
    finally:
        await scheduler.aclose()
        await coordinator.aclose()


@pytest.mark.asyncio
async def test_in_flight_fetches_never_exceed_concurrency(
    store: CacheStore, coordinator: RequestCoordinator, api, fast_options: PrefetchOptions
) -> None:
    api.default_document = {"name": "generic", "kinds": []}
    in_flight = 0
    peak = 0
    fetch_detail = api.offering_detail

    async def counted_detail(catalog_id: str, offering_id: str):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        try:
            await asyncio.sleep(0.02)
            return await fetch_detail(catalog_id, offering_id)
        finally:
            in_flight -= 1

    fetchers = {**api.fetchers(), ResourceKind.OFFERING_DETAIL: counted_detail}
    options = replace(fast_options, concurrency=3)
    scheduler = PrefetchScheduler(store, coordinator, fetchers, options)
    try:
        for i in range(12):
            scheduler.enqueue(LookupItem.offering("cat-1", f"bulk-{i}"))

        report = await scheduler.wait_for_pass()

        assert report.processed == 12
        assert report.cached == 12
        assert peak == 3
    finally:
        await scheduler.aclose()
        await coordinator.aclose()


@pytest.mark.asyncio
async def test_retrying_item_frees_its_worker_slot_during_backoff(
    store: CacheStore, coordinator: RequestCoordinator, api, fast_options: PrefetchOptions
) -> None:
    api.fail(ResourceKind.OFFERING_DETAIL, "cat-1", "off-1", exc=CatalogApiUnavailable(), times=1)
    options = replace(fast_options, concurrency=1)
    scheduler = PrefetchScheduler(store, coordinator, api.fetchers(), options)
    try:
        scheduler.enqueue(LookupItem.offering("cat-1", "off-1"))
        scheduler.enqueue(LookupItem.offering("cat-1", "off-2"))

        report = await scheduler.wait_for_pass()

        details = [ids[1] for kind, ids in api.calls if kind is ResourceKind.OFFERING_DETAIL]
        assert details == ["off-1", "off-2", "off-1"]
        assert report.cached == 2
        assert report.retried == 1
    finally:
        await scheduler.aclose()
        await coordinator.aclose()


@pytest.mark.asyncio
async def test_oldest_settled_states_are_forgotten(
    scheduler: PrefetchScheduler, api, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(scheduler_module, "MAX_SETTLED_STATES", 2)
    api.default_document = {"name": "generic", "kinds": []}
    items = [LookupItem.offering("cat-1", f"bulk-{i}") for i in range(4)]
    for item in items:
        scheduler.enqueue(item)

    await scheduler.wait_for_pass()

    assert scheduler.item_state(items[0]) is None
    assert scheduler.item_state(items[1]) is None
    assert scheduler.item_state(items[2]) is ItemState.CACHED
    assert scheduler.item_state(items[3]) is ItemState.CACHED
