# Copyright (c)
# SPDX-License-Identifier: MIT
"""Correlation ids for the cache control surface.

Every request served by the local API gets a correlation id: the caller's
``X-Request-ID`` when it looks safe to log, a fresh UUID4 otherwise. The id is
stored on ``request.state``, bound to the log context while the route runs and
echoed back on the response, so a cache miss that fans out into catalog calls
can be traced through the JSON log.
"""

from __future__ import annotations

import re
import time
import uuid
from typing import Final

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from catalog_cache.infrastructure.logging.logger import get_json_logger, request_context

REQUEST_ID_HEADER: Final[str] = "X-Request-ID"
_SAFE_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9\-_.:@]{1,128}$")

logger = get_json_logger(__name__)


def coerce_request_id(raw: str | None) -> str:
    """Return ``raw`` when it is a safe id, else a fresh UUID4 string."""
    if raw and _SAFE_RE.match(raw):
        return raw
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id around each request and echo it on the response."""

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER) -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        req_id = coerce_request_id(request.headers.get(self.header_name))
        request.state.request_id = req_id

        started = time.perf_counter()
        with request_context(req_id):
            response: Response = await call_next(request)
            logger.debug(
                "http.request_done",
                extra={
                    "extra": {
                        "method": request.method,
                        "path": request.url.path,
                        "status": response.status_code,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    }
                },
            )

        response.headers.setdefault(self.header_name, req_id)
        return response
