# Copyright (c)
# SPDX-License-Identifier: MIT
"""Document analyzer for background prefetch.

Walks a parsed catalog document once and derives the lookups it is likely to
need: every ``dependencies`` array found at any depth contributes its
catalog, ``(catalog, offering)`` pair and dependency flavors. Entries missing
``catalog_id`` or ``id`` are logged and skipped.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from catalog_cache.domain.entities.lookup_item import LookupItem
from catalog_cache.domain.enums.lookup import LookupType
from catalog_cache.infrastructure.logging.logger import get_json_logger

__all__ = ["DocumentAnalyzer"]

logger = get_json_logger(__name__)


class DocumentAnalyzer:
    """Extracts :class:`LookupItem` objects from a catalog document."""

    def extract(self, document: Any) -> list[LookupItem]:
        """Return unique lookup items in first-seen document order."""
        found: dict[LookupItem, None] = {}
        stack: list[Any] = [document]
        while stack:
            node = stack.pop()
            if isinstance(node, list):
                stack.extend(reversed(node))
                continue
            if not isinstance(node, Mapping):
                continue
            deps = node.get("dependencies")
            if isinstance(deps, list):
                for dep in deps:
                    if isinstance(dep, Mapping):
                        for item in self._from_dependency(dep):
                            found.setdefault(item, None)
            stack.extend(reversed(list(node.values())))

        items = list(found)
        logger.debug(
            "analyzer.extracted",
            extra={
                "extra": {
                    "items": len(items),
                    "catalogs": sum(1 for i in items if i.type is LookupType.CATALOG),
                }
            },
        )
        return items

    def _from_dependency(self, dep: Mapping[str, Any]) -> list[LookupItem]:
        catalog_id = dep.get("catalog_id")
        offering_id = dep.get("id")
        flavors = dep.get("flavors")
        if not (isinstance(catalog_id, str) and catalog_id) or not (
            isinstance(offering_id, str) and offering_id
        ):
            logger.warning(
                "analyzer.incomplete_dependency",
                extra={
                    "extra": {
                        "name": dep.get("name"),
                        "catalog_id": catalog_id,
                        "offering_id": offering_id,
                        "has_flavors": bool(flavors),
                    }
                },
            )
            return []

        items = [
            LookupItem.catalog(catalog_id),
            LookupItem.offering(catalog_id, offering_id),
        ]
        if isinstance(flavors, list):
            items.extend(
                LookupItem.flavor(catalog_id, offering_id, flavor)
                for flavor in flavors
                if isinstance(flavor, str) and flavor
            )
        return items
