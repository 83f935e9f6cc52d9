# Copyright (c)
# SPDX-License-Identifier: MIT
"""Domain value objects."""

from __future__ import annotations

from .cache_key import CacheKey
from .cache_policy import CachePolicy, PolicyRegistry, default_policies

__all__ = ["CacheKey", "CachePolicy", "PolicyRegistry", "default_policies"]
