# Copyright (c)
# SPDX-License-Identifier: MIT
"""
Lookup enumerations.

Purpose:
    Identify what a prefetch lookup or a validation status refers to, and the
    lifecycle states a queued prefetch item moves through:

        QUEUED -> IN_FLIGHT -> CACHED
                            -> QUEUED   (retryable failure, budget left)
                            -> DROPPED  (terminal failure or budget spent)

Layer:
    domain
"""

from __future__ import annotations

from enum import Enum

from .resource_kind import ResourceKind


class LookupType(str, Enum):
    """Kinds of identifiers discovered in a catalog document."""

    CATALOG = "catalog"
    OFFERINGS = "offerings"
    FLAVORS = "flavors"

    @property
    def default_priority(self) -> int:
        """Lower runs first: catalogs, then offerings, then flavors."""
        return _PRIORITIES[self]


_PRIORITIES: dict[LookupType, int] = {
    LookupType.CATALOG: 1,
    LookupType.OFFERINGS: 2,
    LookupType.FLAVORS: 3,
}


class ValidationTarget(str, Enum):
    """Identifier classes whose validity is cached."""

    CATALOG = "catalog"
    OFFERING = "offering"
    FLAVOR = "flavor"


_VALIDATION_KINDS: dict[ValidationTarget, ResourceKind] = {
    ValidationTarget.CATALOG: ResourceKind.CATALOG_VALIDITY,
    ValidationTarget.OFFERING: ResourceKind.OFFERING_VALIDITY,
    ValidationTarget.FLAVOR: ResourceKind.FLAVOR_VALIDITY,
}


def validation_kind_for(target: ValidationTarget) -> ResourceKind:
    """Return the ResourceKind under which validity of ``target`` is cached."""
    return _VALIDATION_KINDS[ValidationTarget(target)]


class ItemState(str, Enum):
    """Lifecycle state of a prefetch item."""

    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    CACHED = "cached"
    DROPPED = "dropped"
