# Copyright (c)
# SPDX-License-Identifier: MIT
"""JSON logging for the catalog cache.

One JSON object per line with stable keys (``ts``, ``level``, ``logger``,
``message``), the service name when configured, and a correlation id. The
correlation id groups every line emitted while serving one HTTP request or
running one prefetch pass; it comes from the record itself, the current
context (see :func:`request_context`) or the ``REQUEST_ID`` environment
variable, in that order.

Structured fields travel as ``extra={"extra": {...}}`` and are merged into
the top level of the line.

Typical usage:
    configure_root_logging("INFO", service="catalog-cache")
    log = get_json_logger(__name__)
    log.info("cache.hit", extra={"extra": {"key": key}})
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "configure_root_logging",
    "get_json_logger",
    "get_request_id",
    "request_context",
    "set_request_context",
]

_REQUEST_ID_ENV_KEY = "REQUEST_ID"

_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("catalog_cache_request_id", default=None)


def set_request_context(*, request_id: str | None = None) -> None:
    """Bind ``request_id`` to the current context until it is rebound."""
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)


@contextmanager
def request_context(request_id: str) -> Iterator[str]:
    """Bind ``request_id`` for the duration of the block, then restore the previous id."""
    token = _REQUEST_ID_CTX.set(request_id)
    try:
        yield request_id
    finally:
        _REQUEST_ID_CTX.reset(token)


def get_request_id() -> str | None:
    """Return the correlation id bound to the current context, if any."""
    return _REQUEST_ID_CTX.get(None)


class _JsonFormatter(logging.Formatter):
    """Render a record as one compact JSON object."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self._service:
            payload["service"] = self._service

        rid = (
            getattr(record, "request_id", None)
            or _REQUEST_ID_CTX.get(None)
            or os.getenv(_REQUEST_ID_ENV_KEY)
        )
        if rid:
            payload["request_id"] = rid

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            if exc_type is not None:
                payload["exc_type"] = exc_type.__name__
            if exc_value is not None:
                payload["exc_message"] = str(exc_value)

        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def configure_root_logging(level: str | int | None = None, *, service: str | None = None) -> None:
    """Install the JSON handler on the root logger.

    Safe to call repeatedly: the level is always applied, the handler only
    once.

    Args:
        level: Level or level name; defaults to env ``LOG_LEVEL`` or ``INFO``.
        service: Service name stamped on every line.
    """
    root = logging.getLogger()
    if level is None:
        level = (os.getenv("LOG_LEVEL") or "INFO").upper()
    root.setLevel(level)

    for handler in root.handlers:
        if isinstance(handler.formatter, _JsonFormatter):
            return

    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter(service))
    root.addHandler(handler)


def get_json_logger(name: str) -> logging.Logger:
    """Return a module logger that propagates to the JSON root handler.

    Does not configure the root logger; call :func:`configure_root_logging`
    once at startup.
    """
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
