# Copyright (c)
# SPDX-License-Identifier: MIT
"""Application Interface: Prefetch Enqueuer.

Synopsis:
    The narrow surface other services use to hand identifiers to the
    background prefetcher. Implementations must not block and must not raise.

Layer:
    application/interfaces
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from catalog_cache.domain.entities.lookup_item import LookupItem


@runtime_checkable
class Prefetcher(Protocol):
    """Accepts lookup items for opportunistic background warming."""

    def enqueue(self, item: LookupItem) -> bool:
        """Queue ``item``; return True if it was newly queued."""
