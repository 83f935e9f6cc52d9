from __future__ import annotations

import asyncio

import pytest

from catalog_cache.application.services.cache_store import CacheStore
from catalog_cache.application.services.request_coordinator import RequestCoordinator
from catalog_cache.application.services.validation_reader import ValidationReader
from catalog_cache.application.use_cases.catalog_lookups import CatalogLookupService
from catalog_cache.domain.entities.lookup_item import LookupItem
from catalog_cache.domain.enums.lookup import ValidationTarget
from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.domain.exceptions.cache import CoordinatorTimeoutError
from catalog_cache.domain.exceptions.catalog import CatalogApiUnavailable


@pytest.fixture()
def lookups(
    store: CacheStore, coordinator: RequestCoordinator, api, prefetcher
) -> CatalogLookupService:
    return CatalogLookupService(
        store,
        coordinator,
        api.fetchers(),
        validation=ValidationReader(store, prefetcher),
        prefetcher=prefetcher,
    )


@pytest.mark.asyncio
async def test_lookups_are_served_from_cache_after_first_fetch(
    lookups: CatalogLookupService, api
) -> None:
    first = await lookups.get_catalogs()
    second = await lookups.get_catalogs()

    assert first == second
    assert first[0]["id"] == "cat-1"
    assert api.count(ResourceKind.CATALOG_LIST) == 1


@pytest.mark.asyncio
async def test_each_lookup_uses_its_resource_kind(lookups: CatalogLookupService, api) -> None:
    assert [o["id"] for o in await lookups.get_offerings("cat-1")] == ["off-1", "off-2"]
    assert (await lookups.get_offering("cat-1", "off-1"))["id"] == "off-1"
    assert await lookups.get_flavors("cat-1", "off-1") == ["standard", "quickstart"]
    details = await lookups.get_flavor_details("cat-1", "off-1", "quickstart")
    assert details == {"name": "quickstart", "label": "Quickstart", "label_i18n": None, "index": 1}
    assert await lookups.get_flavor_details("cat-1", "off-1", "nope") is None
    assert [k for k, _ in api.calls] == [
        ResourceKind.OFFERING_LIST,
        ResourceKind.OFFERING_DETAIL,
        ResourceKind.FLAVOR_LIST,
        ResourceKind.FLAVOR_DETAIL,
        ResourceKind.FLAVOR_DETAIL,
    ]


@pytest.mark.asyncio
async def test_concurrent_explicit_lookups_share_one_fetch(
    lookups: CatalogLookupService, api
) -> None:
    api.delay = 0.02
    results = await asyncio.gather(*(lookups.get_offerings("cat-1") for _ in range(5)))
    assert len({len(r) for r in results}) == 1
    assert api.count(ResourceKind.OFFERING_LIST) == 1


@pytest.mark.asyncio
async def test_listed_catalog_is_valid_and_prefetched(
    lookups: CatalogLookupService, prefetcher, store: CacheStore
) -> None:
    assert await lookups.validate_catalog_id("cat-1") is True
    assert prefetcher.items == [LookupItem.catalog("cat-1")]
    assert await ValidationReader(store).is_valid(ValidationTarget.CATALOG, "cat-1")


@pytest.mark.asyncio
async def test_unlisted_catalog_falls_back_to_its_offerings(
    lookups: CatalogLookupService, api
) -> None:
    api.offerings["shared-cat"] = []
    assert await lookups.validate_catalog_id("shared-cat") is True
    assert api.count(ResourceKind.OFFERING_LIST, "shared-cat") == 1


@pytest.mark.asyncio
async def test_unknown_catalog_is_invalid_with_a_message(
    lookups: CatalogLookupService, store: CacheStore, prefetcher
) -> None:
    assert await lookups.validate_catalog_id("nope") is False
    record = await ValidationReader(store).get_validation(ValidationTarget.CATALOG, "nope")
    assert record is not None
    assert record.error == "Catalog ID not found"
    assert prefetcher.items == []


@pytest.mark.asyncio
async def test_cached_verdict_short_circuits_validation(
    lookups: CatalogLookupService, api
) -> None:
    await lookups.validate_catalog_id("nope")
    calls = len(api.calls)
    assert await lookups.validate_catalog_id("nope") is False
    assert len(api.calls) == calls

    assert await lookups.validate_catalog_id("nope", force=True) is False
    assert len(api.calls) > calls


@pytest.mark.asyncio
async def test_offering_and_flavor_validation(lookups: CatalogLookupService, store) -> None:
    assert await lookups.validate_offering_id("cat-1", "off-2") is True
    assert await lookups.validate_offering_id("cat-1", "off-9") is False
    assert await lookups.validate_offering_id("missing", "off-1") is False
    assert await lookups.validate_flavor("cat-1", "off-1", "standard") is True
    assert await lookups.validate_flavor("cat-1", "off-1", "enterprise") is False

    reader = ValidationReader(store)
    record = await reader.get_validation(ValidationTarget.OFFERING, "cat-1", "off-9")
    assert record is not None and "off-9" in (record.error or "")
    assert await reader.is_valid(ValidationTarget.FLAVOR, "cat-1", "off-1", "standard")


@pytest.mark.asyncio
async def test_refresh_clears_and_refetches(lookups: CatalogLookupService, api) -> None:
    await lookups.get_offerings("cat-1")
    api.offerings["cat-1"] = api.offerings["cat-1"][:1]

    refreshed = await lookups.refresh(ResourceKind.OFFERING_LIST, "cat-1")

    assert [o["id"] for o in refreshed] == ["off-1"]
    assert api.count(ResourceKind.OFFERING_LIST) == 2
    assert [o["id"] for o in await lookups.get_offerings("cat-1")] == ["off-1"]


@pytest.mark.asyncio
async def test_explicit_failures_propagate_and_are_not_cached(
    lookups: CatalogLookupService, api
) -> None:
    api.fail(ResourceKind.OFFERING_LIST, "cat-1", exc=CatalogApiUnavailable(), times=1)

    with pytest.raises(CatalogApiUnavailable) as info:
        await lookups.get_offerings("cat-1")
    assert info.value.user_message()

    assert len(await lookups.get_offerings("cat-1")) == 2


@pytest.mark.asyncio
async def test_explicit_timeout_raises_coordinator_timeout(
    store: CacheStore, coordinator: RequestCoordinator, api
) -> None:
    api.delay = 0.5
    lookups = CatalogLookupService(
        store, coordinator, api.fetchers(), validation=ValidationReader(store), timeout_s=0.01
    )
    with pytest.raises(CoordinatorTimeoutError):
        await lookups.get_catalogs()
    await coordinator.aclose()


@pytest.mark.asyncio
async def test_api_responses_are_cached_under_their_name(lookups: CatalogLookupService) -> None:
    calls = 0

    async def produce() -> dict[str, int]:
        nonlocal calls
        calls += 1
        return {"total": 3}

    assert await lookups.fetch_api_response("search", "vpc", produce=produce) == {"total": 3}
    assert await lookups.fetch_api_response("search", "vpc", produce=produce) == {"total": 3}
    assert await lookups.fetch_api_response("search", "cos", produce=produce) == {"total": 3}
    assert calls == 2
