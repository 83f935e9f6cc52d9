# Copyright (c)
# SPDX-License-Identifier: MIT
"""
Use Case: Explicit Catalog Lookups

Purpose:
    Call-site composition for user-triggered actions (pickers, validators,
    refresh commands). Every read goes through the cache store first and,
    on a miss, through one coordinated fetch that populates the store.
    Unlike background prefetch, failures here propagate to the caller as
    domain errors carrying a human-readable ``user_message()``.

Layer: application/use_cases
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from catalog_cache.application.interfaces.prefetcher import Prefetcher
from catalog_cache.application.interfaces.resource_fetcher import (
    ResourceFetchers,
    resolve_fetcher,
)
from catalog_cache.application.services.cache_store import CacheStore
from catalog_cache.application.services.read_through import fetch_through
from catalog_cache.application.services.request_coordinator import RequestCoordinator
from catalog_cache.application.services.validation_reader import ValidationReader
from catalog_cache.domain.entities.lookup_item import LookupItem
from catalog_cache.domain.enums.lookup import ValidationTarget
from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.domain.exceptions.catalog import CatalogNotFound
from catalog_cache.domain.value_objects.cache_key import CacheKey


class CatalogLookupService:
    """Explicit, cache-first catalog lookups and validators.

    Args:
        store: Shared cache store.
        coordinator: Shared request coordinator.
        fetchers: Fetch function per ResourceKind.
        validation: Validation reader used to publish verdicts.
        prefetcher: Receives valid catalogs for background warming.
        timeout_s: Per-caller wait limit for coordinated fetches.
    """

    def __init__(
        self,
        store: CacheStore,
        coordinator: RequestCoordinator,
        fetchers: ResourceFetchers,
        *,
        validation: ValidationReader,
        prefetcher: Prefetcher | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._fetchers = fetchers
        self._validation = validation
        self._prefetcher = prefetcher
        self._timeout_s = timeout_s

    async def _fetch(self, kind: ResourceKind, *ids: str) -> Any | None:
        fetcher = resolve_fetcher(self._fetchers, kind)
        return await fetch_through(
            self._store,
            self._coordinator,
            CacheKey.of(kind, *ids),
            lambda: fetcher(*ids),
            timeout_s=self._timeout_s,
        )

    # ------------------------------------------------------------------ #
    # Lookups

    async def get_catalogs(self) -> list[dict[str, Any]]:
        """Public and private catalogs available to the account."""
        return list(await self._fetch(ResourceKind.CATALOG_LIST) or [])

    async def get_offerings(self, catalog_id: str) -> list[dict[str, Any]]:
        return list(await self._fetch(ResourceKind.OFFERING_LIST, catalog_id) or [])

    async def get_offering(self, catalog_id: str, offering_id: str) -> dict[str, Any] | None:
        return await self._fetch(ResourceKind.OFFERING_DETAIL, catalog_id, offering_id)

    async def get_flavors(self, catalog_id: str, offering_id: str) -> list[str]:
        return list(await self._fetch(ResourceKind.FLAVOR_LIST, catalog_id, offering_id) or [])

    async def get_flavor_details(
        self, catalog_id: str, offering_id: str, flavor: str
    ) -> dict[str, Any] | None:
        return await self._fetch(ResourceKind.FLAVOR_DETAIL, catalog_id, offering_id, flavor)

    # ------------------------------------------------------------------ #
    # Validators

    async def _cached_verdict(self, target: ValidationTarget, *ids: str) -> bool | None:
        record = await self._validation.get_validation(target, *ids)
        return None if record is None else record.valid

    async def validate_catalog_id(self, catalog_id: str, *, force: bool = False) -> bool:
        """Check that ``catalog_id`` exists and publish the verdict.

        Listed catalogs are valid without a further call; otherwise the
        catalog's offering listing decides (404 means invalid).
        """
        verdict = None if force else await self._cached_verdict(ValidationTarget.CATALOG, catalog_id)
        if verdict is None:
            error: str | None = None
            if any(c.get("id") == catalog_id for c in await self.get_catalogs()):
                verdict = True
            else:
                try:
                    await self.get_offerings(catalog_id)
                    verdict = True
                except CatalogNotFound as exc:
                    verdict, error = False, exc.user_message()
            await self._validation.record_validation(
                ValidationTarget.CATALOG, (catalog_id,), verdict, error
            )
        if verdict and self._prefetcher is not None:
            self._prefetcher.enqueue(LookupItem.catalog(catalog_id))
        return verdict

    async def validate_offering_id(
        self, catalog_id: str, offering_id: str, *, force: bool = False
    ) -> bool:
        """Check that ``offering_id`` is listed in ``catalog_id`` and publish the verdict."""
        ids = (catalog_id, offering_id)
        verdict = None if force else await self._cached_verdict(ValidationTarget.OFFERING, *ids)
        if verdict is not None:
            return verdict
        error: str | None = None
        try:
            offerings = await self.get_offerings(catalog_id)
            verdict = any(o.get("id") == offering_id for o in offerings)
            if not verdict:
                error = f"Offering {offering_id} not found in catalog {catalog_id}"
        except CatalogNotFound as exc:
            verdict, error = False, exc.user_message()
        await self._validation.record_validation(ValidationTarget.OFFERING, ids, verdict, error)
        return verdict

    async def validate_flavor(
        self, catalog_id: str, offering_id: str, flavor: str, *, force: bool = False
    ) -> bool:
        """Check that ``flavor`` is offered by the offering and publish the verdict."""
        ids = (catalog_id, offering_id, flavor)
        verdict = None if force else await self._cached_verdict(ValidationTarget.FLAVOR, *ids)
        if verdict is not None:
            return verdict
        error: str | None = None
        try:
            verdict = flavor in await self.get_flavors(catalog_id, offering_id)
            if not verdict:
                error = f"Flavor {flavor} not found in offering {offering_id}"
        except CatalogNotFound as exc:
            verdict, error = False, exc.user_message()
        await self._validation.record_validation(ValidationTarget.FLAVOR, ids, verdict, error)
        return verdict

    # ------------------------------------------------------------------ #
    # Invalidation and generic responses

    async def refresh(self, kind: ResourceKind, *ids: str) -> Any | None:
        """Drop the cached value and any pending fetch for it, then fetch anew."""
        key = CacheKey.of(kind, *ids)
        await self._store.clear(key)
        self._coordinator.forget(key)
        return await self._fetch(kind, *ids)

    async def fetch_api_response(
        self,
        name: str,
        *ids: str,
        produce: Callable[[], Awaitable[Mapping[str, Any] | list[Any] | None]],
    ) -> Any | None:
        """Cache an arbitrary API response under ``api:{name}:{ids...}``."""
        return await fetch_through(
            self._store,
            self._coordinator,
            CacheKey.of(ResourceKind.API_RESPONSE, name, *ids),
            produce,
            timeout_s=self._timeout_s,
        )
