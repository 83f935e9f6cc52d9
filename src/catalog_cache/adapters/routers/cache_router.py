# Copyright (c)
# SPDX-License-Identifier: MIT
"""
Cache Router.

Summary:
    Local control surface over the cache core: cache-only validation status,
    document prefetch, cache clearing, stats, an explicit offering lookup and
    a liveness probe. Domain errors raised by explicit lookups are rendered by
    the application's exception handlers.

Layer:
    adapters/routers
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from catalog_cache import __version__
from catalog_cache.adapters.schemas.http.cache import (
    CacheCleared,
    CacheStatsResponse,
    HealthStatus,
    OfferingList,
    OfferingSummary,
    PrefetchAccepted,
    PrefetchRequest,
    ValidationStatus,
)
from catalog_cache.dependencies.core import CacheCore, get_cache_core
from catalog_cache.domain.enums.lookup import ValidationTarget, validation_kind_for
from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.domain.value_objects.cache_key import CacheKey
from catalog_cache.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)

router = APIRouter(tags=["Cache"])

Core = Annotated[CacheCore, Depends(get_cache_core)]


def _summary(row: Mapping[str, Any]) -> OfferingSummary:
    # Cached rows are already slimmed by the resource client.
    fields = OfferingSummary.model_fields
    return OfferingSummary(**{name: row[name] for name in fields if row.get(name) is not None})


def _key_or_422(kind: ResourceKind, ids: list[str]) -> CacheKey:
    try:
        return CacheKey.of(kind, *ids)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.get(
    "/v1/validation/{target}",
    response_model=ValidationStatus,
    summary="Read a cached validity verdict (never calls the catalog API)",
)
async def get_validation_status(
    target: ValidationTarget,
    core: Core,
    ids: Annotated[list[str], Query(description="Identifier components in order")] = [],  # noqa: B006
) -> ValidationStatus:
    _key_or_422(validation_kind_for(target), ids)
    valid = await core.reader.is_valid(target, *ids)
    record = await core.reader.get_validation(target, *ids)
    return ValidationStatus(
        target=target,
        ids=ids,
        valid=valid,
        cached=record is not None,
        error=record.error if record is not None else None,
    )


@router.post(
    "/v1/prefetch",
    response_model=PrefetchAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Scan a document for catalog dependencies and prefetch them",
)
async def prefetch_document(body: PrefetchRequest, core: Core) -> PrefetchAccepted:
    enqueued = core.scheduler.analyze_and_enqueue(body.document)
    return PrefetchAccepted(enqueued=enqueued, queued=core.scheduler.queued_count)


@router.delete("/v1/cache", response_model=CacheCleared, summary="Clear every cached entry")
async def clear_cache(core: Core) -> CacheCleared:
    await core.store.clear_all()
    logger.info("cache.cleared_all")
    return CacheCleared(cleared="*")


@router.delete(
    "/v1/cache/{kind}",
    response_model=CacheCleared,
    summary="Clear one cached entry and forget its pending fetch",
)
async def clear_cache_entry(
    kind: ResourceKind,
    core: Core,
    ids: Annotated[list[str], Query(description="Identifier components in order")] = [],  # noqa: B006
) -> CacheCleared:
    key = _key_or_422(kind, ids)
    await core.store.clear(key)
    core.coordinator.forget(key)
    return CacheCleared(cleared=key.value)


@router.get("/v1/cache/stats", response_model=CacheStatsResponse, summary="Cache statistics")
async def cache_stats(core: Core) -> CacheStatsResponse:
    stats = core.store.stats()
    return CacheStatsResponse(
        size=stats.size,
        live_entries=stats.live_entries,
        expired_entries=stats.expired_entries,
        average_time_left_s=stats.average_time_left_s,
        pending_operations=core.coordinator.pending_count,
        queued_items=core.scheduler.queued_count,
        prefetch_running=core.scheduler.is_running,
    )


@router.get(
    "/v1/catalogs/{catalog_id}/offerings",
    response_model=OfferingList,
    summary="List the offerings of a catalog (cache-first)",
)
async def list_offerings(catalog_id: str, core: Core) -> OfferingList:
    rows = await core.lookups.get_offerings(catalog_id)
    offerings = [_summary(row) for row in rows if row.get("id") and row.get("name")]
    return OfferingList(catalog_id=catalog_id, offerings=offerings)


@router.get("/healthz", response_model=HealthStatus, summary="Liveness probe")
async def healthz(request: Request) -> HealthStatus:
    settings = getattr(request.app.state, "settings", None)
    service = settings.service_name if settings is not None else "catalog-cache"
    return HealthStatus(status="ok", service=service, version=__version__)
