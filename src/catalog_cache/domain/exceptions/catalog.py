# Copyright (c)
# SPDX-License-Identifier: MIT
"""
Catalog API Domain Exceptions

Purpose:
    Exceptions representing failures of the remote catalog management API.
    Retryable conditions subclass :class:`TransientFetchError`; everything
    else is terminal for a prefetch item and surfaced as-is to explicit
    callers.

Layer: domain/exceptions
"""
from __future__ import annotations

from .base import DomainError
from .cache import TransientFetchError


class CatalogApiUnavailable(TransientFetchError):
    """Catalog API is unavailable, returned 5xx, or the transport failed."""

    code = "CATALOG_API_UNAVAILABLE"
    default_message = "The catalog service is unavailable, please try again later"


class CatalogRateLimited(TransientFetchError):
    """Catalog API rejected the call with 429."""

    code = "CATALOG_API_RATE_LIMITED"
    default_message = "Too many requests to the catalog service, please try again shortly"


class CatalogNotFound(DomainError):
    """Requested catalog, offering or flavor does not exist upstream."""

    code = "CATALOG_NOT_FOUND"
    default_message = "Catalog ID not found"


class CatalogAuthError(DomainError):
    """Credentials were rejected (401/403) or the token exchange failed."""

    code = "CATALOG_AUTH_FAILED"
    default_message = "Authentication failed - please check your API key"


class CatalogBadRequest(DomainError):
    """Upstream rejected the request parameters (400/422)."""

    code = "CATALOG_BAD_REQUEST"
    default_message = "The catalog service rejected the request"


class CatalogPayloadError(DomainError):
    """Upstream returned an unexpected/invalid payload."""

    code = "CATALOG_PAYLOAD_ERROR"
    default_message = "The catalog service returned an unexpected response"
