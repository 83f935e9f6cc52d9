# Copyright (c)
# SPDX-License-Identifier: MIT
"""Cache Store (application service).

Synopsis:
    One in-process table of :class:`CacheEntry` objects keyed by rendered
    :class:`CacheKey`, parameterized per ResourceKind by a
    :class:`CachePolicy`. Entries whose policy is persistent are mirrored to
    a :class:`KeyValueBackend` as JSON and lazily rehydrated from it.

Design:
    * Lazy expiry: an expired entry is removed when it is read, never by a
      background sweep (``clear_expired`` exists for explicit housekeeping).
    * Lazy rehydration: the backend is consulted at most once per key while
      the key stays resident, on the first in-memory miss for that key. LRU
      eviction and ``clear_expired`` make a key eligible again, which also
      keeps the bookkeeping set from growing past the table.
    * Read-path failures of the backend degrade to a miss; write-path
      failures are logged and swallowed (the memory copy is kept).
    * ``None`` is never stored: it is indistinguishable from "absent".
    * Optional ``max_entries`` adds LRU eviction on top of TTL.

Layer:
    application/services
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from catalog_cache.application.interfaces.kv_backend import KeyValueBackend
from catalog_cache.domain.entities.cache_entry import CacheEntry
from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.domain.value_objects.cache_key import CacheKey
from catalog_cache.domain.value_objects.cache_policy import CachePolicy, PolicyRegistry
from catalog_cache.infrastructure.logging.logger import get_json_logger
from catalog_cache.infrastructure.observability.metrics import record_cache_operation

__all__ = ["CacheStats", "CacheStore"]

logger = get_json_logger(__name__)


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Snapshot of the in-memory table."""

    size: int
    live_entries: int
    expired_entries: int
    average_time_left_s: float


class CacheStore:
    """TTL cache with optional persistence, shared by every core component.

    Args:
        policies: Policy per ResourceKind.
        backend: Persistent key/value backend; ``None`` disables persistence.
        clock: Wall-clock source in epoch seconds (injectable for tests).
        max_entries: Optional LRU bound on the in-memory table.
    """

    def __init__(
        self,
        policies: PolicyRegistry,
        backend: KeyValueBackend | None = None,
        *,
        clock: Callable[[], float] = time.time,
        max_entries: int | None = None,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._policies = policies
        self._backend = backend
        self._clock = clock
        self._max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        # Keys whose backend copy has already been consulted (or superseded).
        self._rehydrated: set[str] = set()

    # ------------------------------------------------------------------ #
    # Policies

    @property
    def policies(self) -> PolicyRegistry:
        return self._policies

    def policy_for(self, kind: ResourceKind) -> CachePolicy:
        """Return the policy for ``kind``.

        Raises:
            InvalidKeyError: If no policy is registered for ``kind``.
        """
        return self._policies[kind]

    def _persists(self, policy: CachePolicy) -> bool:
        return self._backend is not None and policy.persistent

    # ------------------------------------------------------------------ #
    # Reads

    def peek(self, key: CacheKey) -> Any | None:
        """Return the live in-memory value for ``key`` without touching the backend."""
        entry = self._entries.get(key.value)
        if entry is None or not entry.is_live(self._clock()):
            return None
        return entry.value

    async def get(self, key: CacheKey, policy: CachePolicy | None = None) -> Any | None:
        """Return the live value for ``key`` or ``None``.

        Expired and never-stored keys both read as ``None``.
        """
        policy = policy or self.policy_for(key.kind)
        k = key.value
        kind = key.kind.value

        entry = self._entries.get(k)
        if entry is not None:
            if entry.is_live(self._clock()):
                self._entries.move_to_end(k)
                record_cache_operation("get", kind, "hit")
                return entry.value
            del self._entries[k]
            record_cache_operation("get", kind, "expired")
            return None

        if k not in self._rehydrated and self._persists(policy):
            self._rehydrated.add(k)
            value = await self._rehydrate(key, policy)
            if value is not None:
                return value

        record_cache_operation("get", kind, "miss")
        return None

    async def _rehydrate(self, key: CacheKey, policy: CachePolicy) -> Any | None:
        assert self._backend is not None
        k = key.value
        storage_key = policy.storage_key(k)
        try:
            raw = await self._backend.get(storage_key)
            if raw is None:
                return None
            entry = CacheEntry.from_json(raw)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "cache.rehydrate_failed",
                extra={"extra": {"key": k, "error": str(exc), "error_type": type(exc).__name__}},
            )
            record_cache_operation("rehydrate", key.kind.value, "error")
            return None

        # A set() that landed while the backend read was suspended wins.
        current = self._entries.get(k)
        if current is not None:
            return current.value if current.is_live(self._clock()) else None

        if not entry.is_live(self._clock()):
            record_cache_operation("rehydrate", key.kind.value, "expired")
            return None

        self._insert(k, entry)
        record_cache_operation("rehydrate", key.kind.value, "hit")
        logger.debug("cache.rehydrated", extra={"extra": {"key": k}})
        return entry.value

    # ------------------------------------------------------------------ #
    # Writes

    def _insert(self, k: str, entry: CacheEntry) -> None:
        self._entries[k] = entry
        self._entries.move_to_end(k)
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                # The backend copy may still be live; let the next get consult it.
                self._rehydrated.discard(evicted)
                logger.debug("cache.evicted", extra={"extra": {"key": evicted}})

    async def set(self, key: CacheKey, value: Any, policy: CachePolicy | None = None) -> None:
        """Store ``value`` under ``key`` with ``stored_at = now``.

        Persistent policies additionally write ``storage_prefix + key`` to the
        backend. ``None`` values are ignored.
        """
        if value is None:
            return
        policy = policy or self.policy_for(key.kind)
        k = key.value
        entry = CacheEntry(value=value, stored_at=self._clock(), ttl_s=policy.ttl_s)
        self._insert(k, entry)
        self._rehydrated.add(k)
        record_cache_operation("set", key.kind.value, "stored")

        if not self._persists(policy):
            return
        assert self._backend is not None
        try:
            await self._backend.set(policy.storage_key(k), entry.to_json())
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "cache.persist_failed",
                extra={"extra": {"key": k, "error": str(exc), "error_type": type(exc).__name__}},
            )
            record_cache_operation("set", key.kind.value, "error")

    async def clear(self, key: CacheKey) -> None:
        """Remove ``key`` from memory and from the backend."""
        k = key.value
        self._entries.pop(k, None)
        self._rehydrated.add(k)
        record_cache_operation("clear", key.kind.value, "cleared")
        policy = self._policies.get(key.kind)
        if policy is None or not self._persists(policy):
            return
        assert self._backend is not None
        try:
            await self._backend.delete(policy.storage_key(k))
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "cache.delete_failed",
                extra={"extra": {"key": k, "error": str(exc)}},
            )

    async def clear_all(self) -> None:
        """Drop every entry in memory and every persisted entry under our prefixes."""
        count = len(self._entries)
        self._entries.clear()
        self._rehydrated.clear()
        if self._backend is not None:
            prefixes = sorted({p.storage_prefix for p in self._policies.values() if p.persistent})
            for prefix in prefixes:
                try:
                    await self._backend.delete_prefix(prefix)
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "cache.clear_prefix_failed",
                        extra={"extra": {"prefix": prefix, "error": str(exc)}},
                    )
        logger.info("cache.cleared", extra={"extra": {"entries": count}})

    # ------------------------------------------------------------------ #
    # Housekeeping

    async def clear_expired(self) -> int:
        """Drop expired in-memory entries and return how many were removed.

        Dropped keys may be rehydrated again; a backend copy written with the
        same ``stored_at`` is equally expired and reads as a miss.
        """
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_live(now)]
        for k in expired:
            del self._entries[k]
            self._rehydrated.discard(k)
        if expired:
            logger.debug("cache.expired_cleared", extra={"extra": {"count": len(expired)}})
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        live = [e.time_left(now) for e in self._entries.values() if e.is_live(now)]
        return CacheStats(
            size=len(self._entries),
            live_entries=len(live),
            expired_entries=len(self._entries) - len(live),
            average_time_left_s=(sum(live) / len(live)) if live else 0.0,
        )

    def __len__(self) -> int:
        return len(self._entries)
