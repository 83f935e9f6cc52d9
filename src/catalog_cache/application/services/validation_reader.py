# Copyright (c)
# SPDX-License-Identifier: MIT
"""Validation Reader (application service).

Synopsis:
    Cache-only answers to "is this catalog / offering / flavor id valid?" for
    status rendering. A read never triggers a remote fetch: a miss simply
    reads as ``False`` (unknown). A positive hit additionally hands the owning
    identifier to the prefetcher so deeper detail caches warm in the
    background.

    Whichever component actually performed a remote check publishes its
    verdict through :meth:`ValidationReader.record_validation` (or the
    module-level :func:`store_validation` used by the prefetch scheduler).

Stored value:
    ``{"valid": bool, "error": str | None}`` under the validity kind's
    policy. Bare booleans written by older versions are accepted on read.

Layer:
    application/services
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from catalog_cache.application.interfaces.prefetcher import Prefetcher
from catalog_cache.application.services.cache_store import CacheStore
from catalog_cache.domain.entities.lookup_item import LookupItem
from catalog_cache.domain.enums.lookup import ValidationTarget, validation_kind_for
from catalog_cache.domain.value_objects.cache_key import CacheKey
from catalog_cache.infrastructure.logging.logger import get_json_logger

__all__ = [
    "ValidationReader",
    "ValidationRecord",
    "load_validation",
    "store_validation",
]

logger = get_json_logger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationRecord:
    """A cached validity verdict."""

    valid: bool
    error: str | None = None

    def to_value(self) -> dict[str, Any]:
        return {"valid": self.valid, "error": self.error}

    @classmethod
    def from_value(cls, raw: Any) -> ValidationRecord | None:
        if isinstance(raw, bool):
            return cls(valid=raw)
        if isinstance(raw, Mapping) and isinstance(raw.get("valid"), bool):
            error = raw.get("error")
            return cls(valid=raw["valid"], error=error if isinstance(error, str) else None)
        return None


def validation_key(target: ValidationTarget, ids: Sequence[str]) -> CacheKey:
    """Return the cache key holding the verdict for ``target`` and ``ids``."""
    return CacheKey.of(validation_kind_for(target), *ids)


async def load_validation(
    store: CacheStore, target: ValidationTarget, ids: Sequence[str]
) -> ValidationRecord | None:
    """Read a verdict from the store; ``None`` when unknown or unreadable."""
    raw = await store.get(validation_key(target, ids))
    if raw is None:
        return None
    record = ValidationRecord.from_value(raw)
    if record is None:
        logger.warning(
            "validation.malformed",
            extra={"extra": {"target": ValidationTarget(target).value, "ids": list(ids)}},
        )
    return record


async def store_validation(
    store: CacheStore,
    target: ValidationTarget,
    ids: Sequence[str],
    is_valid: bool,
    error: str | None = None,
) -> None:
    """Write a verdict under the validity kind's policy."""
    record = ValidationRecord(valid=bool(is_valid), error=error)
    await store.set(validation_key(target, ids), record.to_value())
    logger.debug(
        "validation.recorded",
        extra={
            "extra": {
                "target": ValidationTarget(target).value,
                "ids": list(ids),
                "valid": record.valid,
                "error": error,
            }
        },
    )


def _owning_item(target: ValidationTarget, ids: Sequence[str]) -> LookupItem:
    if target is ValidationTarget.CATALOG:
        return LookupItem.catalog(ids[0])
    if target is ValidationTarget.OFFERING:
        return LookupItem.offering(ids[0], ids[1])
    return LookupItem.flavor(ids[0], ids[1], ids[2])


class ValidationReader:
    """Cache-only validity lookups plus the companion write path.

    Args:
        store: Shared cache store.
        prefetcher: Receives the owning identifier on a positive hit.
    """

    def __init__(self, store: CacheStore, prefetcher: Prefetcher | None = None) -> None:
        self._store = store
        self._prefetcher = prefetcher

    async def is_valid(self, target: ValidationTarget, *ids: str) -> bool:
        """Return the cached verdict; a miss reads as ``False``.

        Never calls a fetch function.
        """
        target = ValidationTarget(target)
        record = await load_validation(self._store, target, ids)
        if record is None or not record.valid:
            return False
        if self._prefetcher is not None:
            self._prefetcher.enqueue(_owning_item(target, ids))
        return True

    async def get_validation(self, target: ValidationTarget, *ids: str) -> ValidationRecord | None:
        """Return the full cached verdict (including the error message) or ``None``."""
        return await load_validation(self._store, ValidationTarget(target), ids)

    async def record_validation(
        self,
        target: ValidationTarget,
        ids: Sequence[str],
        is_valid: bool,
        error: str | None = None,
    ) -> None:
        """Publish the result of a remote check."""
        await store_validation(self._store, ValidationTarget(target), tuple(ids), is_valid, error)
