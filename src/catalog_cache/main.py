# Copyright (c)
# SPDX-License-Identifier: MIT
"""
catalog-cache HTTP entrypoint.

Synopsis:
    FastAPI factory for the local control surface of the catalog cache. The
    lifespan owns the process-wide resources: it builds the catalog API
    client, selects the persistent backend, wires exactly one cache core and
    tears all of them down on shutdown.

Design:
    • Bootstrap only: routers, middleware, exception handlers, lifespan.
    • Every request carries an `X-Request-ID` that also tags its log lines.
    • Domain errors render as `{"error": {...}}` envelopes with stable codes.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from catalog_cache import __version__
from catalog_cache.adapters.routers import cache_router
from catalog_cache.application.interfaces.kv_backend import KeyValueBackend
from catalog_cache.application.interfaces.resource_fetcher import ResourceFetchers
from catalog_cache.config.settings import Settings, get_settings
from catalog_cache.dependencies.core import build_cache_core, select_backend
from catalog_cache.domain.exceptions.base import DomainError
from catalog_cache.infrastructure.caching import redis_client
from catalog_cache.infrastructure.external_apis.catalog_management import (
    CatalogManagementClient,
    CatalogManagementSettings,
    CatalogResourceClient,
)
from catalog_cache.infrastructure.http.errors import (
    handle_domain_error,
    handle_http_exception,
    handle_unhandled_exception,
    handle_validation_error,
)
from catalog_cache.infrastructure.logging.logger import (
    configure_root_logging,
    get_json_logger,
)
from catalog_cache.infrastructure.middleware.request_id import RequestIdMiddleware

logger = get_json_logger(__name__)


def _lifespan(
    settings: Settings,
    fetchers: ResourceFetchers | None,
    backend: KeyValueBackend | None,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        client: CatalogManagementClient | None = None
        resolved = fetchers
        if resolved is None:
            client = CatalogManagementClient(CatalogManagementSettings())
            resolved = CatalogResourceClient(client).fetchers()

        kv = backend if backend is not None else select_backend(settings)
        core = build_cache_core(settings, resolved, kv)
        app.state.settings = settings
        app.state.core = core
        logger.info("bootstrap.start", extra={"extra": {"service": settings.service_name}})
        try:
            yield
        finally:
            app.state.core = None
            await core.aclose()
            if client is not None:
                try:
                    await client.aclose()
                except Exception:
                    logger.exception("bootstrap.http_client_close_failed")
            if settings.redis_url and backend is None:
                try:
                    await redis_client.close_redis()
                except Exception:
                    logger.exception("bootstrap.redis_close_failed")
            logger.info("bootstrap.stop")

    return lifespan


def _patch_exception_handlers(app: FastAPI) -> None:
    async def _domain_error_handler(request: Request, exc: Exception) -> Response:
        if not isinstance(exc, DomainError):
            raise exc
        return await handle_domain_error(request, exc)

    async def _http_error_handler(request: Request, exc: Exception) -> Response:
        if not isinstance(exc, HTTPException):
            raise exc
        return await handle_http_exception(request, exc)

    async def _validation_error_handler(request: Request, exc: Exception) -> Response:
        if not isinstance(exc, RequestValidationError):
            raise exc
        return await handle_validation_error(request, exc)

    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, handle_unhandled_exception)


def create_app(
    settings: Settings | None = None,
    *,
    fetchers: ResourceFetchers | None = None,
    backend: KeyValueBackend | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Resolved settings; defaults to :func:`get_settings`.
        fetchers: Fetch functions to wire into the core. When omitted the
            lifespan builds a catalog management client from the
            ``CATALOG_API_*`` environment.
        backend: Persistent backend override (tests pass a shared in-memory
            backend); otherwise chosen from settings.
    """
    settings = settings or get_settings()
    configure_root_logging(settings.log_level.upper(), service=settings.service_name)

    app = FastAPI(
        title="Catalog Cache",
        version=__version__,
        description="Local control surface for the catalog cache core.",
        lifespan=_lifespan(settings, fetchers, backend),
    )
    app.state.settings = settings
    app.state.core = None

    _patch_exception_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    app.include_router(cache_router)

    logger.info(
        "service_startup",
        extra={
            "extra": {
                "service": settings.service_name,
                "env": settings.environment.value,
                "version": __version__,
            }
        },
    )
    return app


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("catalog_cache.main:create_app", factory=True, host="127.0.0.1", port=8080)
