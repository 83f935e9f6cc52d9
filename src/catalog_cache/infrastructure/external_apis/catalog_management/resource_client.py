# Copyright (c)
# SPDX-License-Identifier: MIT
"""Catalog resource client: transport -> per-kind fetch functions.

Adapts :class:`CatalogManagementClient` into the ``ResourceFetchers`` mapping
the cache core consumes. Each function takes the cache key's identifier
components positionally and returns a JSON-serializable value (or ``None``
when the resource does not exist). Nothing here caches: the core decides
what is stored and for how long.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from catalog_cache.application.interfaces.resource_fetcher import ResourceFetchers
from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.domain.services.offering_documents import (
    PUBLIC_CATALOGS,
    catalog_summary,
    find_flavor,
    flavor_names,
    offering_summary,
)
from catalog_cache.infrastructure.external_apis.catalog_management.client import (
    CatalogManagementClient,
)
from catalog_cache.infrastructure.logging.logger import get_json_logger

__all__ = ["CatalogResourceClient"]

logger = get_json_logger(__name__)


class CatalogResourceClient:
    """Per-ResourceKind fetch functions over the catalog management API."""

    def __init__(self, client: CatalogManagementClient) -> None:
        self._client = client

    async def catalogs(self) -> list[dict[str, Any]]:
        """Public catalogs followed by enabled private catalogs."""
        private = [
            summary
            for row in await self._client.list_catalogs()
            if (summary := catalog_summary(row)) is not None
        ]
        catalogs = [dict(c) for c in PUBLIC_CATALOGS] + private
        logger.debug(
            "catalog_resources.catalogs",
            extra={"extra": {"public": len(PUBLIC_CATALOGS), "private": len(private)}},
        )
        return catalogs

    async def offerings(self, catalog_id: str) -> list[dict[str, Any]]:
        """Every offering of ``catalog_id`` that has an ``id`` and a ``name``."""
        return [
            summary
            for row in await self._client.list_offerings(catalog_id)
            if (summary := offering_summary(row)) is not None
        ]

    async def offering(self, catalog_id: str, offering_id: str) -> dict[str, Any]:
        """Full offering document."""
        return dict(await self._client.get_offering(catalog_id, offering_id))

    async def flavors(self, catalog_id: str, offering_id: str) -> list[str]:
        """Unique flavor names across all kinds and versions, first-seen order."""
        return flavor_names(await self._client.get_offering(catalog_id, offering_id))

    async def flavor_details(
        self, catalog_id: str, offering_id: str, flavor: str
    ) -> dict[str, Any] | None:
        """First matching flavor's display details, or ``None`` if absent."""
        offering: Mapping[str, Any] = await self._client.get_offering(catalog_id, offering_id)
        return find_flavor(offering, flavor)

    def fetchers(self) -> ResourceFetchers:
        """Return the read-only kind -> fetch function mapping."""
        return MappingProxyType(
            {
                ResourceKind.CATALOG_LIST: self.catalogs,
                ResourceKind.OFFERING_LIST: self.offerings,
                ResourceKind.OFFERING_DETAIL: self.offering,
                ResourceKind.FLAVOR_LIST: self.flavors,
                ResourceKind.FLAVOR_DETAIL: self.flavor_details,
            }
        )
