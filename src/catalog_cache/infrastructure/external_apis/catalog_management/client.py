# Copyright (c)
# SPDX-License-Identifier: MIT
"""Catalog Management Transport Client: resilient, instrumented, async.

This transport is framework-agnostic and provides:

* Async HTTP (httpx) with per-request timeout.
* IAM API-key -> bearer token exchange, cached until shortly before expiry.
* Offset pagination over listing endpoints (``limit`` / ``offset`` /
  ``total_count``).
* Jittered exponential retries (bounded); ``Retry-After`` seconds stretch the
  backoff of the next attempt.
* Circuit breaker (CLOSED <-> OPEN <-> HALF-OPEN) tripped by upstream faults only.
* Deterministic mapping to domain errors (404/401/403/400/422/429/5xx).
* Prometheus latency / error / retry metrics.

Return shapes are the decoded JSON documents of the API; slimming them for
the cache happens in :mod:`.resource_client`.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from contextlib import suppress
from typing import Any, Final
from urllib.parse import quote

import httpx

from catalog_cache.domain.exceptions.cache import TransientFetchError
from catalog_cache.domain.exceptions.catalog import (
    CatalogApiUnavailable,
    CatalogAuthError,
    CatalogBadRequest,
    CatalogNotFound,
    CatalogPayloadError,
    CatalogRateLimited,
)
from catalog_cache.infrastructure.external_apis.catalog_management.settings import (
    CatalogManagementSettings,
)
from catalog_cache.infrastructure.logging.logger import get_json_logger, get_request_id
from catalog_cache.infrastructure.observability.metrics import (
    get_catalog_api_errors_total,
    get_catalog_api_latency_seconds,
    get_catalog_api_retries_total,
)
from catalog_cache.infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
)
from catalog_cache.infrastructure.resilience.retry import RetryPolicy, retry_async

logger = get_json_logger(__name__)

# --------------------------------------------------------------------------- #
# Defaults and headers
# --------------------------------------------------------------------------- #

_DEFAULT_BASE_BACKOFF: Final[float] = 0.5
_DEFAULT_MAX_BACKOFF: Final[float] = 8.0

_DEFAULT_HEADERS: Final[dict[str, str]] = {
    "Accept": "application/json",
    "User-Agent": "catalog-cache-client/1.0",
}

_APIKEY_GRANT: Final[str] = "urn:ibm:params:oauth:grant-type:apikey"


def _parse_retry_after(val: str | None) -> float | None:
    """Parse the HTTP ``Retry-After`` header (seconds form only)."""
    if not val:
        return None
    try:
        return max(0.0, float(val))
    except ValueError:
        return None


def _is_transient(exc: Exception) -> bool:
    """Retry upstream faults only; never 4xx or payload errors."""
    return isinstance(exc, TransientFetchError)


def _retry_after_hint(exc: Exception) -> float | None:
    if isinstance(exc, TransientFetchError):
        hint = exc.details.get("retry_after_s")
        return float(hint) if isinstance(hint, (int, float)) else None
    return None


def _error_details(response: httpx.Response) -> dict[str, Any]:
    details: dict[str, Any] = {"status": response.status_code}
    with suppress(Exception):
        body = response.json()
        if isinstance(body, Mapping):
            message = body.get("message") or body.get("errorMessage")
            if message:
                details["message"] = str(message)
            trace = body.get("trace")
            if trace:
                details["trace"] = str(trace)
    return details


class CatalogManagementClient:
    """Resilient transport for the IBM Cloud catalog management API."""

    def __init__(
        self,
        settings: CatalogManagementSettings,
        *,
        http: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        breaker: CircuitBreaker | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the transport client.

        Args:
            settings: Provider settings loaded from environment or DI.
            http: Optional shared ``httpx.AsyncClient``. If omitted, a client
                is created and owned by this instance.
            retry_policy: Retry configuration for retryable failures. When
                omitted, a jittered exponential policy is built from
                ``settings.max_retries``.
            breaker: Circuit breaker instance to use; created if omitted.
            clock: Monotonic clock used for token expiry.
        """
        self._settings = settings
        self._base_url = str(settings.base_url).rstrip("/")
        self._timeout = float(settings.timeout_s)
        self._clock = clock

        self._owns_client = http is None
        self._client = http or httpx.AsyncClient(
            timeout=self._timeout,
            headers=_DEFAULT_HEADERS.copy(),
        )
        if http is not None:
            for key, value in _DEFAULT_HEADERS.items():
                self._client.headers.setdefault(key, value)

        self._retry = retry_policy or RetryPolicy(
            total=int(settings.max_retries),
            base=_DEFAULT_BASE_BACKOFF,
            cap=_DEFAULT_MAX_BACKOFF,
            jitter=True,
        )
        self._breaker = breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout_s=30.0,
            half_open_max_calls=1,
            counts_as_failure=lambda exc: isinstance(exc, TransientFetchError),
        )

        self._token: str | None = None
        self._token_expires_at: float = 0.0
        self._token_lock = asyncio.Lock()

        self._latency = get_catalog_api_latency_seconds()
        self._errors = get_catalog_api_errors_total()
        self._retries_total = get_catalog_api_retries_total()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance owns it."""
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    # ---------------------------- Public API ----------------------------- #

    async def list_catalogs(self) -> list[Mapping[str, Any]]:
        """Return the account's private catalogs (raw rows)."""
        payload = await self._observe_call(endpoint="catalogs", path="/catalogs")
        return self._resources(payload)

    async def get_catalog(self, catalog_id: str) -> Mapping[str, Any]:
        """Return one catalog document."""
        return await self._observe_call(
            endpoint="catalog", path=f"/catalogs/{quote(catalog_id, safe='')}"
        )

    async def list_offerings(self, catalog_id: str) -> list[Mapping[str, Any]]:
        """Return every offering row of a catalog, following offset pagination."""
        limit = int(self._settings.page_limit)
        path = f"/catalogs/{quote(catalog_id, safe='')}/offerings"
        rows: list[Mapping[str, Any]] = []
        offset = 0
        while True:
            payload = await self._observe_call(
                endpoint="offerings",
                path=path,
                params={"limit": limit, "offset": offset},
            )
            page = self._resources(payload)
            rows.extend(page)
            total = payload.get("total_count")
            total_count = int(total) if isinstance(total, int) else len(rows)
            logger.debug(
                "catalog_api.offerings_page",
                extra={
                    "extra": {
                        "catalog_id": catalog_id,
                        "offset": offset,
                        "page": len(page),
                        "fetched": len(rows),
                        "total": total_count,
                    }
                },
            )
            offset += limit
            if not page or len(rows) >= total_count:
                break
            if self._settings.page_delay_s > 0:
                await asyncio.sleep(self._settings.page_delay_s)
        return rows

    async def get_offering(self, catalog_id: str, offering_id: str) -> Mapping[str, Any]:
        """Return one offering document (kinds, versions, flavors)."""
        return await self._observe_call(
            endpoint="offering",
            path=(
                f"/catalogs/{quote(catalog_id, safe='')}"
                f"/offerings/{quote(offering_id, safe='')}"
            ),
        )

    # --------------------------- Authentication --------------------------- #

    def _token_valid(self) -> bool:
        margin = float(self._settings.token_refresh_margin_s)
        return self._token is not None and self._clock() < self._token_expires_at - margin

    def invalidate_token(self) -> None:
        """Forget the cached bearer token; the next call exchanges the key again."""
        self._token = None
        self._token_expires_at = 0.0

    async def _bearer_token(self) -> str:
        if self._token_valid():
            assert self._token is not None
            return self._token
        async with self._token_lock:
            if self._token_valid():
                assert self._token is not None
                return self._token
            self._token, ttl = await self._exchange_api_key()
            self._token_expires_at = self._clock() + ttl
            return self._token

    async def _exchange_api_key(self) -> tuple[str, float]:
        api_key = self._settings.api_key
        if api_key is None or not api_key.get_secret_value():
            raise CatalogAuthError("API key is not configured", details={"reason": "no_api_key"})

        start = time.perf_counter()
        try:
            response = await self._client.post(
                self._settings.iam_url,
                data={"grant_type": _APIKEY_GRANT, "apikey": api_key.get_secret_value()},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self._timeout,
            )
        except httpx.RequestError as exc:
            self._observe_latency("iam_token", "error", start)
            self._count_error("iam_token", "transport")
            raise CatalogApiUnavailable(details={"endpoint": "iam_token"}) from exc
        self._observe_latency("iam_token", "ok" if response.status_code < 400 else "error", start)

        if response.status_code in (400, 401, 403):
            self._count_error("iam_token", str(response.status_code))
            raise CatalogAuthError(details=_error_details(response))
        if response.status_code == 429 or response.status_code >= 500:
            self._count_error("iam_token", str(response.status_code))
            raise CatalogApiUnavailable(details=_error_details(response))
        try:
            body = response.json()
            token = str(body["access_token"])
            ttl = float(body.get("expires_in") or 3600)
        except (ValueError, KeyError, TypeError) as exc:
            self._count_error("iam_token", "payload")
            raise CatalogPayloadError("invalid IAM token response") from exc
        logger.debug("catalog_api.token_refreshed", extra={"extra": {"expires_in": ttl}})
        return token, ttl

    # --------------------------- Internal helpers ------------------------- #

    @staticmethod
    def _resources(payload: Mapping[str, Any]) -> list[Mapping[str, Any]]:
        resources = payload.get("resources")
        if resources is None:
            return []
        if not isinstance(resources, list):
            raise CatalogPayloadError("bad_shape", details={"expected": "resources:list"})
        return [row for row in resources if isinstance(row, Mapping)]

    def _observe_latency(self, endpoint: str, outcome: str, start: float) -> None:
        with suppress(Exception):
            self._latency.labels(endpoint=endpoint, outcome=outcome).observe(
                time.perf_counter() - start
            )

    def _count_error(self, endpoint: str, reason: str) -> None:
        with suppress(Exception):
            self._errors.labels(endpoint=endpoint, reason=reason).inc()

    async def _observe_call(  # noqa: C901
        self,
        *,
        endpoint: str,
        path: str,
        params: Mapping[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        """Wrap a GET call with auth, breaker, retry and metrics."""
        url = f"{self._base_url}{path}"

        async def _call() -> Mapping[str, Any]:
            headers: dict[str, str] = {"Authorization": f"Bearer {await self._bearer_token()}"}
            request_id = get_request_id()
            if request_id:
                headers["X-Request-ID"] = request_id

            async with self._breaker.guard(endpoint):
                try:
                    response = await self._client.get(
                        url, params=params, headers=headers, timeout=self._timeout
                    )
                except httpx.RequestError as exc:
                    raise CatalogApiUnavailable(
                        details={"endpoint": endpoint, "error": type(exc).__name__}
                    ) from exc

                status = response.status_code
                if status == 401:
                    self.invalidate_token()
                if status >= 400:
                    details = _error_details(response)
                    retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                    if retry_after is not None:
                        details["retry_after_s"] = retry_after
                    raise self._map_status(status, details)

            try:
                payload = response.json()
            except ValueError as exc:
                raise CatalogPayloadError("non_json", details={"endpoint": endpoint}) from exc
            if not isinstance(payload, Mapping):
                raise CatalogPayloadError("bad_shape", details={"expected": "object"})
            return payload

        def _count_retry(_n: int, exc: Exception, _delay: float) -> None:
            with suppress(Exception):
                self._retries_total.labels(endpoint=endpoint, reason=type(exc).__name__).inc()

        start = time.perf_counter()
        error_reason: str | None = None
        try:
            return await retry_async(
                _call,
                policy=self._retry,
                retry_on=_is_transient,
                delay_hint=_retry_after_hint,
                on_retry=_count_retry,
            )
        except CircuitOpenError as exc:
            error_reason = "circuit_open"
            raise CatalogApiUnavailable(
                "The catalog service is unavailable (circuit open)",
                details={"endpoint": endpoint, "reason": str(exc)},
            ) from exc
        except Exception as exc:
            error_reason = type(exc).__name__
            raise
        finally:
            elapsed = time.perf_counter() - start
            with suppress(Exception):
                self._latency.labels(
                    endpoint=endpoint, outcome="error" if error_reason else "ok"
                ).observe(elapsed)
                if error_reason:
                    self._errors.labels(endpoint=endpoint, reason=error_reason).inc()

    @staticmethod
    def _map_status(status: int, details: dict[str, Any]) -> Exception:
        """Return the domain exception for an HTTP error status."""
        if status == 404:
            return CatalogNotFound(details=details)
        if status in (401, 403):
            return CatalogAuthError(details=details)
        if status in (400, 422):
            return CatalogBadRequest(details=details)
        if status == 429:
            return CatalogRateLimited(details=details)
        if status >= 500:
            return CatalogApiUnavailable(details=details)
        return CatalogBadRequest(f"unexpected status {status}", details=details)
