# Copyright (c)
# SPDX-License-Identifier: MIT
"""
Cache policy value objects.

Purpose:
    Per-ResourceKind caching policy and the registry that resolves a kind to
    its policy. A kind used without a registered policy is a configuration
    bug and raises :class:`InvalidKeyError`.

Layer:
    domain/value_objects
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace

from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.domain.exceptions.cache import InvalidKeyError

__all__ = [
    "CachePolicy",
    "PolicyRegistry",
    "TTL_WEEK_S",
    "TTL_DAY_S",
    "TTL_HOUR_S",
    "default_policies",
]

#: Catalog/offering/flavor data: slow-changing upstream metadata.
TTL_WEEK_S = 7 * 24 * 60 * 60

#: Validation verdicts.
TTL_DAY_S = 24 * 60 * 60

#: Generic API responses.
TTL_HOUR_S = 60 * 60


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """TTL and persistence rules for one ResourceKind.

    Attributes:
        ttl_s: Seconds before an entry is considered stale.
        persistent: Whether entries are also written to the key/value backend.
        storage_prefix: Namespace prepended to keys in the backend.
    """

    ttl_s: float
    persistent: bool = False
    storage_prefix: str = ""

    def __post_init__(self) -> None:
        if self.ttl_s < 0:
            raise ValueError("ttl_s must be non-negative")
        if self.persistent and not self.storage_prefix:
            raise ValueError("persistent policies require a storage_prefix")

    def storage_key(self, key: str) -> str:
        """Return the backend key for a rendered cache key."""
        return f"{self.storage_prefix}{key}"

    def with_ttl(self, ttl_s: float) -> CachePolicy:
        """Return a copy of this policy with a different TTL."""
        return replace(self, ttl_s=ttl_s)


class PolicyRegistry(Mapping[ResourceKind, CachePolicy]):
    """Immutable ResourceKind -> CachePolicy mapping."""

    def __init__(self, policies: Mapping[ResourceKind, CachePolicy]) -> None:
        self._policies: dict[ResourceKind, CachePolicy] = dict(policies)

    def __getitem__(self, kind: ResourceKind) -> CachePolicy:
        try:
            return self._policies[kind]
        except KeyError:
            raise InvalidKeyError(
                f"no cache policy registered for resource kind {kind!r}",
                details={"kind": str(getattr(kind, "value", kind))},
            ) from None

    def __contains__(self, kind: object) -> bool:
        return kind in self._policies

    def get(  # type: ignore[override]
        self, kind: ResourceKind, default: CachePolicy | None = None
    ) -> CachePolicy | None:
        return self._policies.get(kind, default)

    def __iter__(self) -> Iterator[ResourceKind]:
        return iter(self._policies)

    def __len__(self) -> int:
        return len(self._policies)

    def override(self, **ttls: float) -> PolicyRegistry:
        """Return a registry with TTLs replaced for the named kinds.

        Keyword names are ResourceKind values, e.g. ``catalog_list=60``.
        """
        updated = dict(self._policies)
        for name, ttl in ttls.items():
            kind = ResourceKind(name)
            updated[kind] = self[kind].with_ttl(ttl)
        return PolicyRegistry(updated)


def default_policies() -> PolicyRegistry:
    """Return the stock policy set for every ResourceKind."""
    return PolicyRegistry(
        {
            ResourceKind.CATALOG_LIST: CachePolicy(TTL_WEEK_S, True, "catalog_cache_"),
            ResourceKind.OFFERING_LIST: CachePolicy(TTL_WEEK_S, True, "offering_cache_"),
            ResourceKind.OFFERING_DETAIL: CachePolicy(TTL_WEEK_S, True, "offering_cache_"),
            ResourceKind.FLAVOR_LIST: CachePolicy(TTL_WEEK_S, True, "default_cache_"),
            ResourceKind.FLAVOR_DETAIL: CachePolicy(TTL_WEEK_S, True, "default_cache_"),
            ResourceKind.CATALOG_VALIDITY: CachePolicy(TTL_DAY_S, True, "validation_cache_"),
            ResourceKind.OFFERING_VALIDITY: CachePolicy(TTL_DAY_S, True, "validation_cache_"),
            ResourceKind.FLAVOR_VALIDITY: CachePolicy(TTL_DAY_S, True, "validation_cache_"),
            ResourceKind.API_RESPONSE: CachePolicy(TTL_HOUR_S, False, "default_cache_"),
        }
    )
