# Copyright (c)
# SPDX-License-Identifier: MIT
"""Async circuit breaker for the catalog transport.

State machine:
    - CLOSED -> count classified failures; at the threshold, go OPEN.
    - OPEN   -> reject calls until ``recovery_timeout_s`` has passed; then HALF_OPEN.
    - HALF_OPEN -> admit ``half_open_max_calls`` probes; success closes, failure reopens.

Process-local, matching the single-process cache core. Only failures the
caller classifies as upstream faults count; a 404 for an unknown catalog id
says nothing about the health of the service and is treated as a success.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from catalog_cache.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(RuntimeError):
    """Raised when the breaker rejects a call without attempting it."""


def _count_everything(_exc: BaseException) -> bool:
    return True


@dataclass
class CircuitBreaker:
    """Failure-counting breaker guarding one upstream service.

    Attributes:
        failure_threshold: Consecutive classified failures that open the circuit.
        recovery_timeout_s: Time spent OPEN before probes are admitted.
        half_open_max_calls: Probes admitted while HALF_OPEN.
        counts_as_failure: Classifier for exceptions raised inside :meth:`guard`.
        name: Label used in log events.
        clock: Monotonic time source.
    """

    failure_threshold: int
    recovery_timeout_s: float
    half_open_max_calls: int
    counts_as_failure: Callable[[BaseException], bool] = _count_everything
    name: str = "catalog_api"
    clock: Callable[[], float] = time.monotonic

    _state: str = CLOSED
    _failures: int = 0
    _opened_at: float = 0.0
    _half_open_calls: int = 0
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def state(self) -> str:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def _transition(self, state: str, endpoint: str) -> None:
        if state == self._state:
            return
        logger.warning(
            "circuit.state_changed",
            extra={
                "extra": {
                    "breaker": self.name,
                    "endpoint": endpoint,
                    "from": self._state,
                    "to": state,
                    "failures": self._failures,
                }
            },
        )
        self._state = state
        if state == OPEN:
            self._opened_at = self.clock()
        elif state == HALF_OPEN:
            self._half_open_calls = 0
        else:
            self._failures = 0

    async def _admit(self, endpoint: str) -> None:
        async with self._lock:
            if self._state == OPEN:
                if self.clock() - self._opened_at < self.recovery_timeout_s:
                    raise CircuitOpenError("circuit_open")
                self._transition(HALF_OPEN, endpoint)
            if self._state == HALF_OPEN:
                if self._half_open_calls >= self.half_open_max_calls:
                    raise CircuitOpenError("circuit_half_open_limit")
                self._half_open_calls += 1

    async def _record_failure(self, endpoint: str) -> None:
        async with self._lock:
            self._failures += 1
            if self._state == HALF_OPEN or self._failures >= self.failure_threshold:
                self._transition(OPEN, endpoint)

    async def _record_success(self, endpoint: str) -> None:
        async with self._lock:
            if self._state == HALF_OPEN:
                self._transition(CLOSED, endpoint)
            elif self._state == CLOSED:
                self._failures = 0

    @asynccontextmanager
    async def guard(self, endpoint: str) -> AsyncIterator[None]:
        """Run the enclosed block if the circuit admits it.

        Raises:
            CircuitOpenError: The circuit is OPEN, or HALF_OPEN with no probe left.
        """
        await self._admit(endpoint)
        try:
            yield
        except Exception as exc:
            if self.counts_as_failure(exc):
                await self._record_failure(endpoint)
            else:
                await self._record_success(endpoint)
            raise
        else:
            await self._record_success(endpoint)
