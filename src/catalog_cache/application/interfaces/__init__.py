# Copyright (c)
# SPDX-License-Identifier: MIT
"""Application ports (Protocols) implemented by infrastructure and services."""

from __future__ import annotations

from .kv_backend import KeyValueBackend
from .prefetcher import Prefetcher
from .resource_fetcher import FetchFunction, ResourceFetchers, resolve_fetcher

__all__ = [
    "FetchFunction",
    "KeyValueBackend",
    "Prefetcher",
    "ResourceFetchers",
    "resolve_fetcher",
]
