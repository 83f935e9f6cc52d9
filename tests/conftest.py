# tests/conftest.py
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio

from catalog_cache.application.services.cache_store import CacheStore
from catalog_cache.application.services.prefetch_scheduler import (
    PrefetchOptions,
    PrefetchScheduler,
)
from catalog_cache.application.services.request_coordinator import RequestCoordinator
from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.domain.exceptions.catalog import CatalogNotFound
from catalog_cache.domain.services.offering_documents import find_flavor, flavor_names
from catalog_cache.domain.value_objects.cache_policy import default_policies
from catalog_cache.infrastructure.caching.memory_backend import InMemoryKeyValueBackend


def offering_document(offering_id: str, *flavors: str) -> dict[str, Any]:
    """Minimal offering payload with one version per flavor."""
    return {
        "id": offering_id,
        "name": f"name-{offering_id}",
        "label": f"Label {offering_id}",
        "kinds": [
            {
                "versions": [
                    {"flavor": {"name": f, "label": f.title(), "index": i}}
                    for i, f in enumerate(flavors)
                ]
            }
        ],
    }


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCatalogApi:
    """In-memory stand-in for the catalog resource client.

    Records every fetch, optionally delays each one, and can be told to fail
    specific calls a number of times (``times=None`` fails forever).
    """

    def __init__(self, *, delay: float = 0.0) -> None:
        self.delay = delay
        self.calls: list[tuple[ResourceKind, tuple[str, ...]]] = []
        self.catalogs: list[dict[str, Any]] = [
            {"id": "cat-1", "label": "Catalog One", "short_description": None, "is_public": False}
        ]
        self.offerings: dict[str, list[dict[str, Any]]] = {
            "cat-1": [
                {"id": "off-1", "name": "vpc", "label": "VPC", "flavors": ["standard", "quickstart"]},
                {"id": "off-2", "name": "cos", "label": "COS", "flavors": ["basic"]},
            ]
        }
        self.documents: dict[tuple[str, str], dict[str, Any]] = {
            ("cat-1", "off-1"): offering_document("off-1", "standard", "quickstart"),
            ("cat-1", "off-2"): offering_document("off-2", "basic"),
        }
        self.default_document: dict[str, Any] | None = None
        self._failures: dict[tuple[ResourceKind, tuple[str, ...]], list[Any]] = {}

    def fail(
        self, kind: ResourceKind, *ids: str, exc: BaseException, times: int | None = None
    ) -> None:
        self._failures[(kind, ids)] = [exc, times]

    def count(self, kind: ResourceKind, *ids: str) -> int:
        return sum(1 for k, i in self.calls if k is kind and (not ids or i == ids))

    async def _enter(self, kind: ResourceKind, ids: tuple[str, ...]) -> None:
        self.calls.append((kind, ids))
        if self.delay:
            await asyncio.sleep(self.delay)
        failure = self._failures.get((kind, ids))
        if failure is not None:
            exc, times = failure
            if times is None or times > 0:
                if times is not None:
                    failure[1] = times - 1
                raise exc

    def _document(self, catalog_id: str, offering_id: str) -> dict[str, Any]:
        doc = self.documents.get((catalog_id, offering_id))
        if doc is None and self.default_document is not None:
            doc = dict(self.default_document, id=offering_id)
        if doc is None:
            raise CatalogNotFound(details={"catalog_id": catalog_id, "offering_id": offering_id})
        return doc

    async def catalog_list(self) -> list[dict[str, Any]]:
        await self._enter(ResourceKind.CATALOG_LIST, ())
        return list(self.catalogs)

    async def offering_list(self, catalog_id: str) -> list[dict[str, Any]]:
        await self._enter(ResourceKind.OFFERING_LIST, (catalog_id,))
        if catalog_id not in self.offerings:
            raise CatalogNotFound(details={"catalog_id": catalog_id})
        return list(self.offerings[catalog_id])

    async def offering_detail(self, catalog_id: str, offering_id: str) -> dict[str, Any]:
        await self._enter(ResourceKind.OFFERING_DETAIL, (catalog_id, offering_id))
        return self._document(catalog_id, offering_id)

    async def flavor_list(self, catalog_id: str, offering_id: str) -> list[str]:
        await self._enter(ResourceKind.FLAVOR_LIST, (catalog_id, offering_id))
        return flavor_names(self._document(catalog_id, offering_id))

    async def flavor_detail(
        self, catalog_id: str, offering_id: str, flavor: str
    ) -> dict[str, Any] | None:
        await self._enter(ResourceKind.FLAVOR_DETAIL, (catalog_id, offering_id, flavor))
        return find_flavor(self._document(catalog_id, offering_id), flavor)

    def fetchers(self) -> dict[ResourceKind, Any]:
        return {
            ResourceKind.CATALOG_LIST: self.catalog_list,
            ResourceKind.OFFERING_LIST: self.offering_list,
            ResourceKind.OFFERING_DETAIL: self.offering_detail,
            ResourceKind.FLAVOR_LIST: self.flavor_list,
            ResourceKind.FLAVOR_DETAIL: self.flavor_detail,
        }


class RecordingPrefetcher:
    """Prefetcher that only remembers what it was given."""

    def __init__(self) -> None:
        self.items: list[Any] = []

    def enqueue(self, item: Any) -> bool:
        self.items.append(item)
        return True


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def api() -> FakeCatalogApi:
    return FakeCatalogApi()


@pytest.fixture()
def backend() -> InMemoryKeyValueBackend:
    return InMemoryKeyValueBackend()


@pytest.fixture()
def store(clock: FakeClock, backend: InMemoryKeyValueBackend) -> CacheStore:
    return CacheStore(default_policies(), backend, clock=clock)


@pytest.fixture()
def coordinator() -> RequestCoordinator:
    return RequestCoordinator()


@pytest.fixture()
def fast_options() -> PrefetchOptions:
    """No throttle, no pacing, instant retries."""
    return PrefetchOptions(
        concurrency=4,
        retry_attempts=2,
        retry_delay_s=0.0,
        retry_cap_s=0.0,
        throttle_interval_s=0.0,
        item_delay_s=0.0,
    )


@pytest_asyncio.fixture()
async def scheduler(
    store: CacheStore,
    coordinator: RequestCoordinator,
    api: FakeCatalogApi,
    fast_options: PrefetchOptions,
) -> AsyncIterator[PrefetchScheduler]:
    sched = PrefetchScheduler(store, coordinator, api.fetchers(), fast_options)
    try:
        yield sched
    finally:
        await sched.aclose()
        await coordinator.aclose()


@pytest.fixture()
def prefetcher() -> RecordingPrefetcher:
    return RecordingPrefetcher()
