# Copyright (c)
# SPDX-License-Identifier: MIT
"""Async retry with jittered exponential backoff.

Used by the catalog transport (per HTTP call) and by the prefetch scheduler
(per lookup item). Only exceptions are retried; which ones is decided by the
caller's ``retry_on`` predicate. An upstream hint such as ``Retry-After`` can
stretch a sleep through ``delay_hint`` but never shortens it below the
computed backoff.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from catalog_cache.infrastructure.logging.logger import get_json_logger

T = TypeVar("T")

logger = get_json_logger(__name__)

RetryHook = Callable[[int, Exception, float], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff shape.

    Attributes:
        total: Retries after the first attempt (``0`` disables retrying).
        base: Backoff before the first retry, doubled for each later one.
        cap: Upper bound of a single backoff.
        jitter: Draw each backoff uniformly from ``[0, backoff]``.
        hint_cap: Upper bound applied to ``delay_hint`` values.
    """

    total: int
    base: float
    cap: float
    jitter: bool = True
    hint_cap: float = 30.0

    def __post_init__(self) -> None:
        if self.total < 0:
            raise ValueError("total must be >= 0")
        if self.base < 0 or self.cap < 0:
            raise ValueError("backoff bounds must be non-negative")

    @property
    def attempts(self) -> int:
        """Maximum number of calls, first attempt included."""
        return self.total + 1


def backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Return the sleep before retry number ``attempt`` (0-based)."""
    backoff = min(policy.cap, policy.base * (2**attempt))
    if policy.jitter:
        backoff = random.uniform(0, backoff)  # noqa: S311
    return backoff


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    retry_on: Callable[[Exception], bool],
    delay_hint: Callable[[Exception], float | None] | None = None,
    on_retry: RetryHook | None = None,
) -> T:
    """Call ``fn`` until it returns or the retry budget is spent.

    Args:
        fn: Zero-arg coroutine function.
        policy: Budget and backoff.
        retry_on: True when the exception is worth another attempt. Consulted
            only while budget remains.
        delay_hint: Optional minimum sleep suggested by the failure itself.
        on_retry: Called with ``(retry_number, exc, delay)`` right before each
            sleep; retry numbers start at 1.

    Raises:
        The last exception once the budget is spent or ``retry_on`` declines.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:  # noqa: BLE001
            if attempt >= policy.total or not retry_on(exc):
                raise
            delay = backoff_delay(policy, attempt)
            hint = delay_hint(exc) if delay_hint is not None else None
            if hint:
                delay = max(delay, min(hint, policy.hint_cap))
            attempt += 1
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            logger.debug(
                "retry.scheduled",
                extra={
                    "extra": {
                        "retry": attempt,
                        "of": policy.total,
                        "delay_s": round(delay, 3),
                        "error_type": type(exc).__name__,
                    }
                },
            )
        await asyncio.sleep(delay)
