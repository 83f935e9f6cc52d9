# Copyright (c)
# SPDX-License-Identifier: MIT
"""Application Interface: Persistent Key/Value Backend.

Synopsis:
    Minimal string key/value storage used by the cache store for entries whose
    policy is persistent. Values are opaque strings (the store serializes
    entries to JSON before calling ``set``).

Layer:
    application/interfaces
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyValueBackend(Protocol):
    """Async string key/value store.

    Only the cache store talks to a backend; the coordinator and the prefetch
    scheduler never read or write it directly.
    """

    async def get(self, key: str) -> str | None:
        """Return the stored string for ``key`` or ``None`` if absent."""

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    async def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix`` and return how many went."""
