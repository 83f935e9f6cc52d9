# Copyright (c)
# SPDX-License-Identifier: MIT
"""Domain exception exports."""

from __future__ import annotations

from .base import DomainError
from .cache import (
    CacheSerializationError,
    CoordinatorTimeoutError,
    InvalidKeyError,
    TransientFetchError,
)
from .catalog import (
    CatalogApiUnavailable,
    CatalogAuthError,
    CatalogBadRequest,
    CatalogNotFound,
    CatalogPayloadError,
    CatalogRateLimited,
)

__all__ = [
    "CacheSerializationError",
    "CatalogApiUnavailable",
    "CatalogAuthError",
    "CatalogBadRequest",
    "CatalogNotFound",
    "CatalogPayloadError",
    "CatalogRateLimited",
    "CoordinatorTimeoutError",
    "DomainError",
    "InvalidKeyError",
    "TransientFetchError",
]
