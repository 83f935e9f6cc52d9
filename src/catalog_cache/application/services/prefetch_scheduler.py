# Copyright (c)
# SPDX-License-Identifier: MIT
"""Prefetch Scheduler (application service).

Synopsis:
    Background warming of the cache from a loaded catalog document. Items are
    queued without blocking the caller and processed in throttled passes that
    go through the same store + coordinator composition as explicit lookups,
    so a background fetch and a user-triggered fetch for the same key share
    one remote call.

Pass model:
    * Leading + trailing throttle: the first request starts a pass
      immediately; further requests within ``throttle_interval_s`` of the last
      pass start are folded into one trailing pass.
    * Reentrancy guard: at most one pass runs; a request that arrives during a
      pass sets a re-run flag instead of starting a second pass.
    * Per pass, at most ``max_items_per_type[type]`` items of each lookup type
      are taken; the rest stay queued for the next pass.
    * Priority groups run in order (catalogs, then offerings, then flavors) so
      parent validity is known before children are considered. Within a
      group, a semaphore bounds concurrency and each worker slot pauses
      ``item_delay_s`` after every attempt.
    * ``TransientFetchError`` is retried with jittered exponential backoff;
      anything else drops the item for this pass. One item's failure never
      aborts the pass. A retrying item gives its worker slot back while it
      sleeps through the backoff.

Item lifecycle:
    QUEUED -> IN_FLIGHT -> CACHED
                        -> QUEUED (transient failure, retry budget left)
                        -> DROPPED (terminal failure, pruned, budget spent)

Layer:
    application/services
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import defaultdict
from collections.abc import Callable, Mapping
from contextlib import suppress
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from catalog_cache.application.interfaces.resource_fetcher import (
    ResourceFetchers,
    resolve_fetcher,
)
from catalog_cache.application.services.cache_store import CacheStore
from catalog_cache.application.services.document_analyzer import DocumentAnalyzer
from catalog_cache.application.services.read_through import fetch_through
from catalog_cache.application.services.request_coordinator import RequestCoordinator
from catalog_cache.application.services.validation_reader import (
    load_validation,
    store_validation,
)
from catalog_cache.domain.entities.lookup_item import LookupItem
from catalog_cache.domain.enums.lookup import ItemState, LookupType, ValidationTarget
from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.domain.exceptions.cache import TransientFetchError
from catalog_cache.domain.exceptions.catalog import CatalogNotFound
from catalog_cache.domain.services.offering_documents import flavor_names
from catalog_cache.domain.value_objects.cache_key import CacheKey
from catalog_cache.infrastructure.logging.logger import get_json_logger, request_context
from catalog_cache.infrastructure.observability.metrics import (
    observe_prefetch_pass,
    record_prefetch_item,
)
from catalog_cache.infrastructure.resilience.retry import RetryPolicy, retry_async

__all__ = ["PassReport", "PrefetchOptions", "PrefetchScheduler"]

logger = get_json_logger(__name__)

_Outcome = Literal["cached", "dropped", "pruned"]

_OUTCOME_STATES: dict[str, ItemState] = {
    "cached": ItemState.CACHED,
    "dropped": ItemState.DROPPED,
    "pruned": ItemState.DROPPED,
}

_SETTLED = frozenset({ItemState.CACHED, ItemState.DROPPED})

# Settled item states kept for introspection; the oldest are forgotten first.
MAX_SETTLED_STATES = 4096


def _default_caps() -> dict[LookupType, int]:
    return {LookupType.CATALOG: 50, LookupType.OFFERINGS: 20, LookupType.FLAVORS: 30}


@dataclass(frozen=True)
class PrefetchOptions:
    """Tuning knobs for background prefetch.

    Attributes:
        concurrency: Items processed at once within a priority group.
        retry_attempts: Retries per item for transient failures.
        retry_delay_s: Base delay of the exponential backoff.
        retry_cap_s: Upper bound of one backoff sleep.
        throttle_interval_s: Minimum spacing between pass starts.
        item_delay_s: Pause a worker slot takes after each item.
        max_items_per_type: Items of each type taken per pass. A type that is
            absent from the mapping is not capped.
    """

    concurrency: int = 3
    retry_attempts: int = 3
    retry_delay_s: float = 1.0
    retry_cap_s: float = 30.0
    throttle_interval_s: float = 5.0
    item_delay_s: float = 0.2
    max_items_per_type: Mapping[LookupType, int] = field(default_factory=_default_caps)

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts must be >= 0")
        if min(self.retry_delay_s, self.throttle_interval_s, self.item_delay_s) < 0:
            raise ValueError("delays must be non-negative")

    def cap_for(self, lookup_type: LookupType) -> int | None:
        return self.max_items_per_type.get(lookup_type)


@dataclass
class PassReport:
    """Outcome counters of one processing pass."""

    processed: int = 0
    cached: int = 0
    dropped: int = 0
    pruned: int = 0
    retried: int = 0
    deferred: int = 0
    duration_s: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class PrefetchScheduler:
    """Queues lookup items and drives them into the cache in the background.

    Args:
        store: Shared cache store.
        coordinator: Shared request coordinator.
        fetchers: Fetch function per ResourceKind.
        options: Tuning knobs.
        analyzer: Document walker used by :meth:`analyze_and_enqueue`.
        clock: Monotonic clock used for throttling.
    """

    def __init__(
        self,
        store: CacheStore,
        coordinator: RequestCoordinator,
        fetchers: ResourceFetchers,
        options: PrefetchOptions | None = None,
        *,
        analyzer: DocumentAnalyzer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._fetchers = fetchers
        self._options = options or PrefetchOptions()
        self._analyzer = analyzer or DocumentAnalyzer()
        self._clock = clock
        self._retry_policy = RetryPolicy(
            total=self._options.retry_attempts,
            base=self._options.retry_delay_s,
            cap=self._options.retry_cap_s,
        )
        self._semaphore = asyncio.Semaphore(self._options.concurrency)

        self._states: dict[LookupItem, ItemState] = {}
        self._queue: dict[LookupItem, int] = {}
        self._seq = itertools.count()
        self._pass_no = itertools.count(1)

        self._pass_task: asyncio.Task[PassReport] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._rerun = False
        self._last_pass_at: float | None = None
        self._waiters: list[asyncio.Future[PassReport]] = []
        self._closed = False

    # ------------------------------------------------------------------ #
    # Introspection

    @property
    def options(self) -> PrefetchOptions:
        return self._options

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    @property
    def is_running(self) -> bool:
        return self._pass_task is not None and not self._pass_task.done()

    def item_state(self, item: LookupItem) -> ItemState | None:
        """Last known state of ``item``.

        ``None`` if it was never queued, or if it settled long enough ago to
        be forgotten (see ``MAX_SETTLED_STATES``).
        """
        return self._states.get(item)

    # ------------------------------------------------------------------ #
    # Enqueue

    def analyze_and_enqueue(self, document: Any) -> int:
        """Walk ``document`` once and enqueue every lookup it implies.

        Returns:
            Number of items newly queued.
        """
        items = self._analyzer.extract(document)
        queued = sum(1 for item in items if self.enqueue(item))
        logger.info(
            "prefetch.document_analyzed",
            extra={"extra": {"found": len(items), "queued": queued}},
        )
        return queued

    def enqueue(self, item: LookupItem) -> bool:
        """Queue ``item`` for background processing.

        No-op when the item is already queued or in flight, or when the
        resource it would fetch is already cached live. Never blocks and
        never raises.

        Returns:
            True if the item was newly queued.
        """
        try:
            if self._closed:
                return False
            if self._states.get(item) in (ItemState.QUEUED, ItemState.IN_FLIGHT):
                return False
            key = self._target_key(item)
            if key is not None and self._store.peek(key) is not None:
                self._states[item] = ItemState.CACHED
                return False
            self._states[item] = ItemState.QUEUED
            self._queue[item] = next(self._seq)
            self._request_pass()
            return True
        except Exception:  # noqa: BLE001
            logger.exception(
                "prefetch.enqueue_failed",
                extra={"extra": {"type": item.type.value, "value": item.value}},
            )
            return False

    @staticmethod
    def _target_key(item: LookupItem) -> CacheKey | None:
        ctx = item.context
        if item.type is LookupType.CATALOG:
            return CacheKey.of(ResourceKind.OFFERING_LIST, item.value)
        if not ctx.catalog_id:
            return None
        if item.type is LookupType.OFFERINGS:
            return CacheKey.of(ResourceKind.OFFERING_DETAIL, ctx.catalog_id, item.value)
        if not ctx.offering_id:
            return None
        return CacheKey.of(
            ResourceKind.FLAVOR_DETAIL, ctx.catalog_id, ctx.offering_id, item.value
        )

    # ------------------------------------------------------------------ #
    # Throttle + reentrancy

    def _request_pass(self) -> None:
        if self._closed:
            return
        if self._pass_task is not None:
            self._rerun = True
            return
        if self._timer is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Picked up by the next enqueue or wait_for_pass on a running loop.
            logger.debug("prefetch.no_running_loop")
            return

        wait = 0.0
        if self._last_pass_at is not None:
            wait = self._last_pass_at + self._options.throttle_interval_s - self._clock()
        if wait <= 0:
            self._start_pass(loop)
        else:
            self._timer = loop.call_later(wait, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if self._queue or self._rerun:
            self._rerun = False
            self._request_pass()

    def _start_pass(self, loop: asyncio.AbstractEventLoop) -> None:
        self._last_pass_at = self._clock()
        self._rerun = False
        task = loop.create_task(self._run_pass(next(self._pass_no)))
        self._pass_task = task
        task.add_done_callback(self._on_pass_done)

    def _on_pass_done(self, task: asyncio.Task[PassReport]) -> None:
        self._pass_task = None
        report = PassReport()
        if not task.cancelled():
            exc = task.exception()
            if exc is None:
                report = task.result()
            else:
                logger.error(
                    "prefetch.pass_crashed",
                    extra={"extra": {"error": str(exc), "error_type": type(exc).__name__}},
                )
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(report)
        if self._closed:
            return
        if self._rerun or self._queue:
            self._rerun = False
            self._request_pass()

    async def wait_for_pass(self) -> PassReport:
        """Wait for the running pass, or the next one if none is running.

        Returns an empty report immediately when there is nothing to do.
        """
        if self._closed:
            return PassReport()
        if self._pass_task is None and self._timer is None:
            if not self._queue:
                return PassReport()
            self._request_pass()
        waiter: asyncio.Future[PassReport] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return await waiter

    async def aclose(self) -> None:
        """Stop scheduling, cancel the trailing timer and the running pass."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        task = self._pass_task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(PassReport())

    # ------------------------------------------------------------------ #
    # Pass execution

    def _select_batch(self) -> list[LookupItem]:
        ordered = sorted(self._queue.items(), key=lambda kv: (kv[0].effective_priority, kv[1]))
        taken: dict[LookupType, int] = defaultdict(int)
        batch: list[LookupItem] = []
        for item, _ in ordered:
            cap = self._options.cap_for(item.type)
            if cap is not None and taken[item.type] >= cap:
                continue
            taken[item.type] += 1
            batch.append(item)
        for item in batch:
            del self._queue[item]
        return batch

    async def _run_pass(self, pass_no: int) -> PassReport:
        with request_context(f"prefetch-pass-{pass_no}"):
            started = time.perf_counter()
            batch = self._select_batch()
            report = PassReport(processed=len(batch), deferred=len(self._queue))
            logger.info(
                "prefetch.pass_started",
                extra={"extra": {"items": len(batch), "deferred": report.deferred}},
            )

            for _, group in itertools.groupby(batch, key=lambda i: i.effective_priority):
                await asyncio.gather(*(self._run_item(item, report) for item in group))

            self._forget_settled()
            report.duration_s = time.perf_counter() - started
            observe_prefetch_pass(report.duration_s)
            logger.info("prefetch.pass_finished", extra={"extra": report.as_dict()})
            return report

    async def _run_item(self, item: LookupItem, report: PassReport) -> None:
        try:
            outcome: _Outcome = await retry_async(
                lambda: self._attempt(item),
                policy=self._retry_policy,
                retry_on=lambda exc: isinstance(exc, TransientFetchError),
                on_retry=lambda n, exc, delay: self._note_retry(item, n, exc, delay, report),
            )
        except Exception as exc:  # noqa: BLE001
            outcome = "dropped"
            logger.warning(
                "prefetch.item_failed",
                extra={
                    "extra": {
                        "type": item.type.value,
                        "value": item.value,
                        "catalog_id": item.context.catalog_id,
                        "offering_id": item.context.offering_id,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    }
                },
            )

        self._states[item] = _OUTCOME_STATES[outcome]
        if outcome == "cached":
            report.cached += 1
        elif outcome == "pruned":
            report.pruned += 1
        else:
            report.dropped += 1
        record_prefetch_item(item.type.value, outcome)

    async def _attempt(self, item: LookupItem) -> _Outcome:
        # One attempt holds a worker slot; backoff between attempts does not.
        failure: Exception | None = None
        async with self._semaphore:
            try:
                outcome = await self._process(item)
            except Exception as exc:  # noqa: BLE001
                failure = exc
            if self._options.item_delay_s > 0:
                await asyncio.sleep(self._options.item_delay_s)
        if failure is not None:
            raise failure
        return outcome

    def _forget_settled(self) -> None:
        excess = len(self._states) - MAX_SETTLED_STATES
        if excess <= 0:
            return
        settled = [item for item, state in self._states.items() if state in _SETTLED]
        for item in settled[:excess]:
            del self._states[item]

    def _note_retry(
        self, item: LookupItem, retry: int, exc: Exception, delay: float, report: PassReport
    ) -> None:
        self._states[item] = ItemState.QUEUED
        report.retried += 1
        record_prefetch_item(item.type.value, "retried")
        logger.info(
            "prefetch.item_retry",
            extra={
                "extra": {
                    "type": item.type.value,
                    "value": item.value,
                    "retry": retry,
                    "delay_s": round(delay, 3),
                    "error": str(exc),
                }
            },
        )

    async def _process(self, item: LookupItem) -> _Outcome:
        self._states[item] = ItemState.IN_FLIGHT
        ctx = item.context
        if item.type is LookupType.CATALOG:
            return await self._process_catalog(item.value)
        if item.type is LookupType.OFFERINGS and ctx.catalog_id:
            return await self._process_offering(ctx.catalog_id, item.value)
        if item.type is LookupType.FLAVORS and ctx.catalog_id and ctx.offering_id:
            return await self._process_flavor(ctx.catalog_id, ctx.offering_id, item.value)
        logger.warning(
            "prefetch.item_missing_context",
            extra={"extra": {"type": item.type.value, "value": item.value}},
        )
        return "dropped"

    async def _fetch(self, kind: ResourceKind, *ids: str) -> Any | None:
        fetcher = resolve_fetcher(self._fetchers, kind)
        return await fetch_through(
            self._store, self._coordinator, CacheKey.of(kind, *ids), lambda: fetcher(*ids)
        )

    async def _is_known_invalid(self, target: ValidationTarget, *ids: str) -> bool:
        record = await load_validation(self._store, target, ids)
        return record is not None and not record.valid

    async def _process_catalog(self, catalog_id: str) -> _Outcome:
        try:
            offerings = await self._fetch(ResourceKind.OFFERING_LIST, catalog_id)
        except CatalogNotFound as exc:
            await store_validation(
                self._store, ValidationTarget.CATALOG, (catalog_id,), False, exc.user_message()
            )
            return "dropped"
        valid = offerings is not None
        await store_validation(self._store, ValidationTarget.CATALOG, (catalog_id,), valid)
        return "cached" if valid else "dropped"

    async def _process_offering(self, catalog_id: str, offering_id: str) -> _Outcome:
        if await self._is_known_invalid(ValidationTarget.CATALOG, catalog_id):
            return "pruned"
        ids = (catalog_id, offering_id)
        try:
            detail = await self._fetch(ResourceKind.OFFERING_DETAIL, *ids)
        except CatalogNotFound as exc:
            await store_validation(
                self._store, ValidationTarget.OFFERING, ids, False, exc.user_message()
            )
            return "dropped"
        if detail is None:
            await store_validation(
                self._store, ValidationTarget.OFFERING, ids, False, "Offering not found"
            )
            return "dropped"

        flavors_key = CacheKey.of(ResourceKind.FLAVOR_LIST, *ids)
        if isinstance(detail, Mapping) and self._store.peek(flavors_key) is None:
            await self._store.set(flavors_key, flavor_names(detail))
        await store_validation(self._store, ValidationTarget.OFFERING, ids, True)
        return "cached"

    async def _process_flavor(self, catalog_id: str, offering_id: str, flavor: str) -> _Outcome:
        if await self._is_known_invalid(ValidationTarget.CATALOG, catalog_id):
            return "pruned"
        if await self._is_known_invalid(ValidationTarget.OFFERING, catalog_id, offering_id):
            return "pruned"
        ids = (catalog_id, offering_id, flavor)
        try:
            details = await self._fetch(ResourceKind.FLAVOR_DETAIL, *ids)
        except CatalogNotFound as exc:
            await store_validation(
                self._store, ValidationTarget.FLAVOR, ids, False, exc.user_message()
            )
            return "dropped"
        valid = details is not None
        await store_validation(
            self._store,
            ValidationTarget.FLAVOR,
            ids,
            valid,
            None if valid else f"Flavor {flavor!r} not found",
        )
        return "cached" if valid else "dropped"
