# Copyright (c)
# SPDX-License-Identifier: MIT
"""Domain entities."""

from __future__ import annotations

from .cache_entry import CacheEntry
from .lookup_item import LookupContext, LookupItem

__all__ = ["CacheEntry", "LookupContext", "LookupItem"]
