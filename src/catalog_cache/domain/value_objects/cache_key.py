# Copyright (c)
# SPDX-License-Identifier: MIT
"""
Cache key value object.

Purpose:
    Deterministic, injective key for one cached value:

        flavorDetails:{catalogId}:{offeringId}:{flavorName}

    Components are escaped (``%`` -> ``%25``, ``:`` -> ``%3A``) before being
    joined, so two distinct identifier tuples can never render to the same
    string, and the same tuple always renders identically.

Layer:
    domain/value_objects
"""

from __future__ import annotations

from dataclasses import dataclass

from catalog_cache.domain.enums.resource_kind import ResourceKind

__all__ = ["CacheKey", "escape_component"]


def escape_component(part: str) -> str:
    """Escape the separator (and the escape character itself) in one component."""
    return part.replace("%", "%25").replace(":", "%3A")


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Identifier of one cached value within a ResourceKind."""

    kind: ResourceKind
    parts: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        arity = self.kind.arity
        if arity is not None and len(self.parts) != arity:
            raise ValueError(
                f"{self.kind.value} keys take {arity} component(s), got {len(self.parts)}"
            )
        for part in self.parts:
            if not isinstance(part, str):
                raise TypeError("cache key components must be strings")

    @classmethod
    def of(cls, kind: ResourceKind, *parts: str) -> CacheKey:
        """Build a key from a kind and its identifier components."""
        return cls(ResourceKind(kind), tuple(parts))

    @property
    def value(self) -> str:
        """Rendered string form of the key."""
        return ":".join((self.kind.key_tag, *(escape_component(p) for p in self.parts)))

    def __str__(self) -> str:
        return self.value
