# Copyright (c)
# SPDX-License-Identifier: MIT
"""HTTP schemas for the cache control surface."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from catalog_cache.adapters.schemas.http.base import BaseHTTPSchema
from catalog_cache.domain.enums.lookup import ValidationTarget


class ValidationStatus(BaseHTTPSchema):
    """Cached validity verdict for one identifier tuple."""

    target: ValidationTarget
    ids: list[str]
    valid: bool = Field(description="False when no verdict is cached.")
    cached: bool = Field(description="True when a verdict was found in the cache.")
    error: str | None = None


class PrefetchRequest(BaseHTTPSchema):
    """Parsed JSON document to scan for catalog dependencies."""

    document: Any = Field(description="Any JSON value; `dependencies` arrays are discovered.")


class PrefetchAccepted(BaseHTTPSchema):
    enqueued: int = Field(ge=0, description="New items added to the prefetch queue.")
    queued: int = Field(ge=0, description="Items waiting for the next pass.")


class CacheCleared(BaseHTTPSchema):
    cleared: str = Field(description="Key that was cleared, or `*` for everything.")


class CacheStatsResponse(BaseHTTPSchema):
    size: int
    live_entries: int
    expired_entries: int
    average_time_left_s: float
    pending_operations: int
    queued_items: int
    prefetch_running: bool


class OfferingSummary(BaseHTTPSchema):
    id: str
    name: str
    label: str | None = None
    short_description: str | None = None
    flavors: list[str] = Field(default_factory=list)
    created: str | None = None
    updated: str | None = None


class OfferingList(BaseHTTPSchema):
    catalog_id: str
    offerings: list[OfferingSummary]


class HealthStatus(BaseHTTPSchema):
    status: str
    service: str
    version: str
