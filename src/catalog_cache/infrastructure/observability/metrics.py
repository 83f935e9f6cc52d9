# Copyright (c)
# SPDX-License-Identifier: MIT
"""Prometheus collectors for the cache core and the catalog transport.

Every collector is declared once in ``_DECLARED`` and materialized lazily
against whatever ``prometheus_client.REGISTRY`` is active at the time. When a
test swaps the default registry, the memo is dropped and collectors are
registered again on the new one; a name already present on the registry is
reused instead of raising ``Duplicated timeseries``.

The ``record_*`` / ``observe_*`` helpers are what the hot paths call. A
collector failure is logged at debug level and never reaches the caller.

Example:
    record_cache_operation("get", "offering_list", "hit")
    get_catalog_api_latency_seconds().labels(endpoint="offerings", outcome="ok").observe(0.12)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Final

import prometheus_client as prom
from prometheus_client import Counter, Histogram

_log = logging.getLogger(__name__)

_LATENCY_BUCKETS: Final[tuple[float, ...]] = (
    0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0,
)


@dataclass(frozen=True)
class _Declared:
    kind: type[Counter] | type[Histogram]
    help: str
    labels: tuple[str, ...] = ()
    options: dict[str, object] = field(default_factory=dict)


_DECLARED: Final[dict[str, _Declared]] = {
    # cache core
    "catalog_cache_operations_total": _Declared(
        Counter, "Cache store operations by kind and outcome", ("operation", "kind", "outcome")
    ),
    "catalog_cache_coordinator_total": _Declared(
        Counter, "Request coordinator registrations, joins and timeouts", ("outcome",)
    ),
    "catalog_cache_prefetch_items_total": _Declared(
        Counter, "Prefetch items processed by type and outcome", ("type", "outcome")
    ),
    "catalog_cache_prefetch_pass_seconds": _Declared(
        Histogram, "Duration of one prefetch pass (seconds)", (), {"buckets": _LATENCY_BUCKETS}
    ),
    # catalog transport
    "catalog_api_latency_seconds": _Declared(
        Histogram,
        "Latency of catalog management API calls (seconds)",
        ("endpoint", "outcome"),
        {"buckets": _LATENCY_BUCKETS},
    ),
    "catalog_api_errors_total": _Declared(
        Counter, "Errors returned by, or raised while calling, the catalog API", ("endpoint", "reason")
    ),
    "catalog_api_retries_total": _Declared(
        Counter, "Retries of catalog management API calls", ("endpoint", "reason")
    ),
}

_lock = threading.RLock()
_memo: dict[str, Counter | Histogram] = {}
_memo_registry: int | None = None


def _collector(name: str) -> Counter | Histogram:
    global _memo_registry
    declared = _DECLARED[name]
    with _lock:
        if _memo_registry != id(prom.REGISTRY):
            _memo.clear()
            _memo_registry = id(prom.REGISTRY)

        found = _memo.get(name)
        if found is not None:
            return found

        # Counters register under the bare name and its ``_total`` form.
        existing = getattr(prom.REGISTRY, "_names_to_collectors", {}).get(name)
        if isinstance(existing, declared.kind):
            _memo[name] = existing
            return existing

        created = declared.kind(
            name.removesuffix("_total") if declared.kind is Counter else name,
            declared.help,
            declared.labels,
            registry=prom.REGISTRY,
            **declared.options,
        )
        _memo[name] = created
        return created


def get_cache_operations_total() -> Counter:
    """Cache store operations.

    Labels:
        operation: ``get|set|clear|rehydrate``.
        kind: ResourceKind value.
        outcome: ``hit|miss|expired|stored|cleared|error``.
    """
    return _collector("catalog_cache_operations_total")  # type: ignore[return-value]


def get_coordinator_total() -> Counter:
    """Coordinator outcomes: ``started|joined|timeout``."""
    return _collector("catalog_cache_coordinator_total")  # type: ignore[return-value]


def get_prefetch_items_total() -> Counter:
    """Prefetch items by lookup type and ``cached|retried|dropped|pruned``."""
    return _collector("catalog_cache_prefetch_items_total")  # type: ignore[return-value]


def get_prefetch_pass_seconds() -> Histogram:
    return _collector("catalog_cache_prefetch_pass_seconds")  # type: ignore[return-value]


def get_catalog_api_latency_seconds() -> Histogram:
    """Upstream latency by logical endpoint and ``ok|error``."""
    return _collector("catalog_api_latency_seconds")  # type: ignore[return-value]


def get_catalog_api_errors_total() -> Counter:
    return _collector("catalog_api_errors_total")  # type: ignore[return-value]


def get_catalog_api_retries_total() -> Counter:
    return _collector("catalog_api_retries_total")  # type: ignore[return-value]


def record_cache_operation(operation: str, kind: str, outcome: str) -> None:
    try:
        get_cache_operations_total().labels(operation=operation, kind=kind, outcome=outcome).inc()
    except Exception:  # pragma: no cover
        _log.debug("metrics.cache_operation_failed", exc_info=True)


def record_coordinator(outcome: str) -> None:
    try:
        get_coordinator_total().labels(outcome=outcome).inc()
    except Exception:  # pragma: no cover
        _log.debug("metrics.coordinator_failed", exc_info=True)


def record_prefetch_item(item_type: str, outcome: str) -> None:
    try:
        get_prefetch_items_total().labels(type=item_type, outcome=outcome).inc()
    except Exception:  # pragma: no cover
        _log.debug("metrics.prefetch_item_failed", exc_info=True)


def observe_prefetch_pass(seconds: float) -> None:
    try:
        get_prefetch_pass_seconds().observe(seconds)
    except Exception:  # pragma: no cover
        _log.debug("metrics.prefetch_pass_failed", exc_info=True)
