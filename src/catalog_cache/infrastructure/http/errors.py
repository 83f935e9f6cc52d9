# Copyright (c)
# SPDX-License-Identifier: MIT
"""HTTP error envelopes and exception handlers.

Every error leaves the service as ``{"error": {...}}`` with a stable
``code``, the HTTP status, a user-facing message and the request id.
Domain errors map to statuses by class; anything unrecognised is a 500.
"""

from __future__ import annotations

import math
from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.responses import Response

from catalog_cache.domain.exceptions.base import DomainError
from catalog_cache.domain.exceptions.cache import (
    CoordinatorTimeoutError,
    TransientFetchError,
)
from catalog_cache.domain.exceptions.catalog import (
    CatalogAuthError,
    CatalogBadRequest,
    CatalogNotFound,
    CatalogPayloadError,
)
from catalog_cache.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)

# Most specific first; the first isinstance match wins.
_DOMAIN_STATUS: tuple[tuple[type[DomainError], int], ...] = (
    (CatalogNotFound, 404),
    (CatalogBadRequest, 400),
    (CoordinatorTimeoutError, 504),
    (TransientFetchError, 503),
    (CatalogAuthError, 502),
    (CatalogPayloadError, 502),
)


def _request_id(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


def status_for(exc: DomainError) -> int:
    """Return the HTTP status for a domain error."""
    for exc_type, status in _DOMAIN_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


def error_envelope(
    *,
    code: str,
    http_status: int,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    err: dict[str, Any] = {
        "code": code,
        "http_status": http_status,
        "message": message,
    }
    if details:
        err["details"] = details
    if request_id is not None:
        err["request_id"] = request_id
    return {"error": err}


async def handle_domain_error(request: Request, exc: DomainError) -> Response:
    status = status_for(exc)
    logger.warning(
        "http.domain_error",
        extra={"extra": {"code": exc.code, "status": status, "path": request.url.path}},
    )
    payload = error_envelope(
        code=exc.code,
        http_status=status,
        message=exc.user_message(),
        details=exc.details,
        request_id=_request_id(request),
    )
    headers: dict[str, str] = {}
    retry_after = (exc.details or {}).get("retry_after_s")
    if status == 503 and retry_after is not None:
        headers["Retry-After"] = str(max(1, math.ceil(float(retry_after))))
    return JSONResponse(status_code=status, content=payload, headers=headers or None)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> Response:
    payload = error_envelope(
        code="VALIDATION_ERROR",
        http_status=422,
        message="Request validation failed",
        details={"errors": jsonable_encoder(exc.errors())},
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=422, content=payload)


async def handle_http_exception(request: Request, exc: HTTPException) -> Response:
    payload = error_envelope(
        code="HTTP_ERROR",
        http_status=exc.status_code,
        message=exc.detail if isinstance(exc.detail, str) else "HTTP error",
        details=None if isinstance(exc.detail, str) else {"detail": exc.detail},
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=exc.status_code, content=payload)


async def handle_unhandled_exception(request: Request, exc: Exception) -> Response:
    logger.error(
        "http.unhandled_error",
        exc_info=exc,
        extra={"extra": {"path": request.url.path}},
    )
    payload = error_envelope(
        code="INTERNAL_ERROR",
        http_status=500,
        message="Internal server error",
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=500, content=payload)
