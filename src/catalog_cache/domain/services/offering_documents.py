# Copyright (c)
# SPDX-License-Identifier: MIT
"""Offering document helpers.

Purpose:
    Pure functions over catalog management payloads: the unique flavor names
    of an offering, a single flavor's display details, and the slim catalog
    and offering summaries shown in pickers.

Layer:
    domain

Notes:
    - No logging, no transport, no persistence.
    - Inputs are plain decoded JSON; missing or mistyped fields are skipped
      rather than raising.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from typing import Any, Final

__all__ = [
    "PUBLIC_CATALOGS",
    "catalog_summary",
    "find_flavor",
    "flavor_names",
    "offering_summary",
]

#: Public catalogs have no list endpoint; their ids are fixed.
PUBLIC_CATALOGS: Final[tuple[dict[str, Any], ...]] = (
    {
        "id": "1082e7d2-5e2f-0a11-a3bc-f88a8e1931fc",
        "label": "IBM Cloud Catalog",
        "short_description": "IBM Cloud Catalog",
        "is_public": True,
    },
    {
        "id": "7a4d68b4-cf8b-40cd-a3d1-f49aff526eb3",
        "label": "Community Registry",
        "short_description": "Community Registry",
        "is_public": True,
    },
)


def _versions(offering: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    kinds = offering.get("kinds")
    if not isinstance(kinds, Sequence) or isinstance(kinds, str):
        return
    for kind in kinds:
        if not isinstance(kind, Mapping):
            continue
        versions = kind.get("versions")
        if not isinstance(versions, Sequence) or isinstance(versions, str):
            continue
        for version in versions:
            if isinstance(version, Mapping):
                yield version


def flavor_names(offering: Mapping[str, Any]) -> list[str]:
    """Return unique flavor names across all kinds and versions, first-seen order."""
    seen: dict[str, None] = {}
    for version in _versions(offering):
        flavor = version.get("flavor")
        if isinstance(flavor, Mapping):
            name = flavor.get("name")
            if isinstance(name, str) and name:
                seen.setdefault(name, None)
    return list(seen)


def find_flavor(offering: Mapping[str, Any], name: str) -> dict[str, Any] | None:
    """Return the first flavor called ``name`` that carries a label, or ``None``."""
    for version in _versions(offering):
        flavor = version.get("flavor")
        if not isinstance(flavor, Mapping):
            continue
        if flavor.get("name") == name and flavor.get("label"):
            return {
                "name": name,
                "label": flavor["label"],
                "label_i18n": flavor.get("label_i18n"),
                "index": flavor.get("index") or 0,
            }
    return None


def catalog_summary(row: Mapping[str, Any]) -> dict[str, Any] | None:
    """Slim a private catalog row; ``None`` for disabled or unlabeled rows."""
    if row.get("disabled") or not row.get("id") or not row.get("label"):
        return None
    return {
        "id": row["id"],
        "label": row["label"],
        "short_description": row.get("short_description"),
        "is_public": False,
    }


def offering_summary(row: Mapping[str, Any]) -> dict[str, Any] | None:
    """Slim an offering row; ``None`` unless it has both ``id`` and ``name``."""
    if not row.get("id") or not row.get("name"):
        return None
    return {
        "id": row["id"],
        "name": row["name"],
        "label": row.get("label"),
        "short_description": row.get("short_description"),
        "flavors": flavor_names(row),
        "created": row.get("created"),
        "updated": row.get("updated"),
    }
