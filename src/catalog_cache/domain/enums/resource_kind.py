# Copyright (c)
# SPDX-License-Identifier: MIT
"""
Resource kind enumeration.

Purpose:
    Tag every class of cacheable object fetched from (or derived from) the
    remote catalog management API. Each kind owns exactly one cache policy
    (TTL, persistence, storage prefix) and one key namespace.

Layer:
    domain
"""

from __future__ import annotations

from enum import Enum


class ResourceKind(str, Enum):
    """Classes of cached objects.

    Values are stable identifiers usable in JSON, URLs and metric labels.
    """

    CATALOG_LIST = "catalog_list"
    OFFERING_LIST = "offering_list"
    OFFERING_DETAIL = "offering_detail"
    FLAVOR_LIST = "flavor_list"
    FLAVOR_DETAIL = "flavor_detail"

    CATALOG_VALIDITY = "catalog_validity"
    OFFERING_VALIDITY = "offering_validity"
    FLAVOR_VALIDITY = "flavor_validity"

    API_RESPONSE = "api_response"

    @property
    def key_tag(self) -> str:
        """Return the leading segment used when rendering cache keys."""
        return _KEY_TAGS[self]

    @property
    def arity(self) -> int | None:
        """Number of identifier components a key of this kind carries.

        ``None`` means variable (generic API responses).
        """
        return _ARITY[self]


_KEY_TAGS: dict[ResourceKind, str] = {
    ResourceKind.CATALOG_LIST: "catalogs",
    ResourceKind.OFFERING_LIST: "offerings",
    ResourceKind.OFFERING_DETAIL: "offering",
    ResourceKind.FLAVOR_LIST: "flavors",
    ResourceKind.FLAVOR_DETAIL: "flavorDetails",
    ResourceKind.CATALOG_VALIDITY: "catalogId",
    ResourceKind.OFFERING_VALIDITY: "offeringValidation",
    ResourceKind.FLAVOR_VALIDITY: "flavorValidation",
    ResourceKind.API_RESPONSE: "api",
}

_ARITY: dict[ResourceKind, int | None] = {
    ResourceKind.CATALOG_LIST: 0,
    ResourceKind.OFFERING_LIST: 1,
    ResourceKind.OFFERING_DETAIL: 2,
    ResourceKind.FLAVOR_LIST: 2,
    ResourceKind.FLAVOR_DETAIL: 3,
    ResourceKind.CATALOG_VALIDITY: 1,
    ResourceKind.OFFERING_VALIDITY: 2,
    ResourceKind.FLAVOR_VALIDITY: 3,
    ResourceKind.API_RESPONSE: None,
}
