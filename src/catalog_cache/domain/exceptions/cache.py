# Copyright (c)
# SPDX-License-Identifier: MIT
"""
Cache Domain Exceptions

Purpose:
    Error taxonomy of the caching and request-coordination layer.

    * ``TransientFetchError``: remote failure that may succeed on retry. The
      prefetch scheduler retries these; they never reach the user from a
      background pass.
    * ``CoordinatorTimeoutError``: raised only to the caller that asked for a
      timeout; the underlying operation keeps running.
    * ``CacheSerializationError``: persistence read/write failure. Reads
      degrade to a miss, writes are logged and swallowed.
    * ``InvalidKeyError``: a ResourceKind without a registered policy. This is
      a configuration bug and is never recovered from.

Layer: domain/exceptions
"""
from __future__ import annotations

from .base import DomainError


class TransientFetchError(DomainError):
    """Remote fetch failed in a way that is eligible for retry."""

    code = "TRANSIENT_FETCH_ERROR"
    default_message = "The catalog service is temporarily unavailable"


class CoordinatorTimeoutError(DomainError):
    """A coordinated operation did not settle within the caller's timeout."""

    code = "COORDINATOR_TIMEOUT"
    default_message = "The request timed out"


class CacheSerializationError(DomainError):
    """A cache entry could not be serialized or deserialized."""

    code = "CACHE_SERIALIZATION_ERROR"


class InvalidKeyError(DomainError):
    """A resource kind was used without a registered cache policy."""

    code = "INVALID_CACHE_KEY"
