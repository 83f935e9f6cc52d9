# Copyright (c)
# SPDX-License-Identifier: MIT
"""Lookup Item (Domain Layer).

Purpose:
    A remote lookup the prefetch scheduler may perform, derived from a loaded
    catalog document. Equality is by ``(type, value, catalog_id,
    offering_id)``; priority and the public flag do not participate.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from catalog_cache.domain.entities.base import BaseEntity
from catalog_cache.domain.enums.lookup import LookupType


@dataclass(frozen=True, slots=True)
class LookupContext:
    """Parent identifiers a lookup is scoped to."""

    catalog_id: str | None = None
    offering_id: str | None = None
    is_public: bool | None = None


@dataclass(frozen=True, slots=True, eq=False)
class LookupItem(BaseEntity):
    """One prefetchable identifier.

    Attributes:
        type: What ``value`` identifies.
        value: Catalog id, offering id or flavor name.
        context: Parent identifiers (required for offerings and flavors).
        priority: Lower runs earlier; defaults per type.
    """

    type: LookupType
    value: str
    context: LookupContext = field(default_factory=LookupContext)
    priority: int | None = None

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("lookup value must be a non-empty string")
        self._normalize("type", LookupType(self.type))
        if self.type is LookupType.CATALOG and self.context.catalog_id is None:
            self._normalize("context", replace(self.context, catalog_id=self.value))

    @classmethod
    def catalog(cls, catalog_id: str, *, priority: int | None = None) -> LookupItem:
        """Lookup of a catalog's offerings."""
        return cls(LookupType.CATALOG, catalog_id, LookupContext(catalog_id=catalog_id), priority)

    @classmethod
    def offering(
        cls, catalog_id: str, offering_id: str, *, priority: int | None = None
    ) -> LookupItem:
        """Lookup of one offering's details."""
        return cls(
            LookupType.OFFERINGS,
            offering_id,
            LookupContext(catalog_id=catalog_id, offering_id=offering_id),
            priority,
        )

    @classmethod
    def flavor(
        cls,
        catalog_id: str,
        offering_id: str,
        flavor_name: str,
        *,
        priority: int | None = None,
    ) -> LookupItem:
        """Lookup of one flavor's details."""
        return cls(
            LookupType.FLAVORS,
            flavor_name,
            LookupContext(catalog_id=catalog_id, offering_id=offering_id),
            priority,
        )

    @property
    def identity(self) -> tuple[str, str, str | None, str | None]:
        """Tuple that defines equality."""
        return (self.type.value, self.value, self.context.catalog_id, self.context.offering_id)

    @property
    def effective_priority(self) -> int:
        """Explicit priority, or the per-type default."""
        return self.priority if self.priority is not None else self.type.default_priority

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LookupItem):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)
