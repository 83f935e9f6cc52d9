# Copyright (c)
# SPDX-License-Identifier: MIT
"""Shared base for the cache's domain entities.

Entities are frozen, slotted dataclasses. Subclasses check or normalize their
fields in ``__post_init__``; because the instance is already frozen at that
point, normalization goes through :meth:`BaseEntity._normalize`.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BaseEntity:
    """Frozen entity base with a post-init hook."""

    def __post_init__(self) -> None:
        return

    def _normalize(self, name: str, value: object) -> None:
        """Overwrite field ``name`` while the entity is being constructed."""
        object.__setattr__(self, name, value)
