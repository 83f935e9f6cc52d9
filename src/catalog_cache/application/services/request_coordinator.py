# Copyright (c)
# SPDX-License-Identifier: MIT
"""Request Coordinator (single-flight).

Synopsis:
    Collapses concurrent requests for the same key into one in-flight
    operation. Every caller awaits the same task and observes the same value
    or the same failure.

Design:
    * The pending task is created and registered synchronously inside
      :meth:`RequestCoordinator.coordinate` before the first ``await``, so no
      other caller can slip in between "check" and "register".
    * The registry is guarded by a ``threading.Lock``; exclusion holds even if
      the coordinator is reached from another thread.
    * Callers await a shielded view of the task: a caller's own cancellation
      or timeout never cancels the shared operation.
    * Cleanup runs from the task's done-callback and removes the registration
      only if it is still the same :class:`PendingOperation` object.
    * The coordinator never reads or writes the cache; see
      :func:`catalog_cache.application.services.read_through.fetch_through`.

Layer:
    application/services
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from catalog_cache.domain.exceptions.cache import CoordinatorTimeoutError
from catalog_cache.domain.value_objects.cache_key import CacheKey
from catalog_cache.infrastructure.logging.logger import get_json_logger
from catalog_cache.infrastructure.observability.metrics import record_coordinator

__all__ = ["PendingOperation", "RequestCoordinator"]

T = TypeVar("T")

logger = get_json_logger(__name__)


@dataclass(eq=False, slots=True)
class PendingOperation:
    """One outstanding operation for one key. Compared by identity."""

    key: str
    task: asyncio.Future[Any]
    started_at: float = field(default_factory=time.monotonic)


class RequestCoordinator:
    """Deduplicates concurrent async operations by key.

    Args:
        default_timeout_s: Wait limit applied when a caller does not pass one.
            ``None`` waits for settlement.
    """

    def __init__(self, default_timeout_s: float | None = None) -> None:
        self._default_timeout_s = default_timeout_s
        self._pending: dict[str, PendingOperation] = {}
        self._lock = threading.Lock()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def is_pending(self, key: CacheKey | str) -> bool:
        """Return True while an unsettled operation is registered for ``key``."""
        with self._lock:
            op = self._pending.get(str(key))
            return op is not None and not op.task.done()

    def forget(self, key: CacheKey | str) -> bool:
        """Drop the registration for ``key`` so the next caller starts fresh.

        The forgotten operation keeps running; its own cleanup will leave any
        newer registration alone.
        """
        with self._lock:
            return self._pending.pop(str(key), None) is not None

    async def coordinate(
        self,
        key: CacheKey | str,
        produce: Callable[[], Awaitable[T]],
        *,
        timeout_s: float | None = None,
    ) -> T:
        """Run ``produce`` once per key among concurrent callers.

        Args:
            key: Dedup key.
            produce: Zero-arg coroutine function; called only by the first caller.
            timeout_s: Per-caller wait limit; overrides the default.

        Returns:
            The value ``produce`` resolved to.

        Raises:
            CoordinatorTimeoutError: This caller's wait limit elapsed. The
                operation itself keeps running.
            Exception: Whatever ``produce`` raised, for every joined caller.
        """
        k = str(key)
        op = self._register(k, produce)

        timeout = timeout_s if timeout_s is not None else self._default_timeout_s
        if timeout is None:
            return await asyncio.shield(op.task)
        try:
            return await asyncio.wait_for(asyncio.shield(op.task), timeout)
        except TimeoutError:
            record_coordinator("timeout")
            logger.warning(
                "coordinator.timeout",
                extra={"extra": {"key": k, "timeout_s": timeout}},
            )
            raise CoordinatorTimeoutError(
                f"operation for {k!r} did not settle within {timeout}s",
                details={"key": k, "timeout_s": timeout},
            ) from None

    def _register(self, k: str, produce: Callable[[], Awaitable[Any]]) -> PendingOperation:
        with self._lock:
            existing = self._pending.get(k)
            if existing is not None and not existing.task.done():
                record_coordinator("joined")
                logger.debug("coordinator.joined", extra={"extra": {"key": k}})
                return existing

            task = asyncio.ensure_future(produce())
            op = PendingOperation(key=k, task=task)
            self._pending[k] = op
        task.add_done_callback(lambda t, op=op: self._settled(op, t))
        record_coordinator("started")
        return op

    def _settled(self, op: PendingOperation, task: asyncio.Future[Any]) -> None:
        with self._lock:
            if self._pending.get(op.key) is op:
                del self._pending[op.key]
        # Mark the outcome as observed; callers that timed out never will.
        if not task.cancelled() and task.exception() is not None:
            logger.debug(
                "coordinator.failed",
                extra={"extra": {"key": op.key, "error_type": type(task.exception()).__name__}},
            )

    async def aclose(self) -> None:
        """Cancel every pending operation (shutdown only)."""
        with self._lock:
            ops = list(self._pending.values())
            self._pending.clear()
        for op in ops:
            op.task.cancel()
        if ops:
            await asyncio.gather(*(op.task for op in ops), return_exceptions=True)
