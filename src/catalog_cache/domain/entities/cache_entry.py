# Copyright (c)
# SPDX-License-Identifier: MIT
"""Cache Entry (Domain Layer).

Purpose:
    One stored value plus the wall-clock time it was stored and the TTL that
    applied at the time. Wall-clock (epoch seconds) is used so persisted
    entries keep their age across process restarts.

Layer:
    domain/entities
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from catalog_cache.domain.entities.base import BaseEntity
from catalog_cache.domain.exceptions.cache import CacheSerializationError


@dataclass(frozen=True, slots=True)
class CacheEntry(BaseEntity):
    """Stored value with its age metadata.

    Attributes:
        value: JSON-serializable cached value.
        stored_at: Epoch seconds when the value was stored.
        ttl_s: Lifetime in seconds from ``stored_at``.
    """

    value: Any
    stored_at: float
    ttl_s: float

    def is_live(self, now: float) -> bool:
        """Return True iff ``now - stored_at < ttl_s``."""
        return (now - self.stored_at) < self.ttl_s

    def time_left(self, now: float) -> float:
        """Seconds until expiry (negative once expired)."""
        return self.stored_at + self.ttl_s - now

    def to_json(self) -> str:
        """Serialize for the persistent backend.

        Raises:
            CacheSerializationError: If the value is not JSON-serializable.
        """
        try:
            return json.dumps(
                {"value": self.value, "stored_at": self.stored_at, "ttl_s": self.ttl_s},
                separators=(",", ":"),
                ensure_ascii=False,
            )
        except (TypeError, ValueError) as exc:
            raise CacheSerializationError(
                "cache value is not JSON-serializable", details={"error": str(exc)}
            ) from exc

    @classmethod
    def from_json(cls, raw: str | bytes) -> CacheEntry:
        """Deserialize an entry written by :meth:`to_json`.

        Raises:
            CacheSerializationError: If the payload is malformed.
        """
        try:
            doc = json.loads(raw)
            return cls(
                value=doc["value"],
                stored_at=float(doc["stored_at"]),
                ttl_s=float(doc["ttl_s"]),
            )
        except (TypeError, ValueError, KeyError) as exc:
            raise CacheSerializationError(
                "malformed persisted cache entry", details={"error": str(exc)}
            ) from exc
