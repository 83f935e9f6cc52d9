# Copyright (c)
# SPDX-License-Identifier: MIT
"""Application Interface: Resource Fetch Functions.

Synopsis:
    The core treats the remote catalog client as a set of opaque async
    functions, one per ResourceKind, taking the key's identifier components
    positionally:

        fetchers[ResourceKind.FLAVOR_DETAIL](catalog_id, offering_id, flavor)

    Transport, authentication and pagination live entirely behind these
    callables. Retryable failures are signalled with ``TransientFetchError``
    subclasses; anything else is terminal.

Layer:
    application/interfaces
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeAlias

from catalog_cache.domain.enums.resource_kind import ResourceKind

FetchFunction: TypeAlias = Callable[..., Awaitable[Any]]
ResourceFetchers: TypeAlias = Mapping[ResourceKind, FetchFunction]

__all__ = ["FetchFunction", "ResourceFetchers", "resolve_fetcher"]


def resolve_fetcher(fetchers: ResourceFetchers, kind: ResourceKind) -> FetchFunction:
    """Return the fetch function registered for ``kind``.

    Raises:
        LookupError: If no fetch function is registered for the kind.
    """
    try:
        return fetchers[kind]
    except KeyError:
        raise LookupError(f"no fetch function registered for {kind.value}") from None
