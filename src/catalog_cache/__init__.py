# Copyright (c)
# SPDX-License-Identifier: MIT
"""Catalog cache core.

Caching and request-coordination layer that sits between an editor surface
and the remote catalog management API: a TTL cache store with optional
persistence, per-key request deduplication, a cache-only validation reader
and a throttled background prefetch scheduler.
"""

from __future__ import annotations

__version__ = "0.1.0"
