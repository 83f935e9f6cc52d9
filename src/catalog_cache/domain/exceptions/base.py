# Copyright (c)
# SPDX-License-Identifier: MIT
"""Root of the catalog cache error hierarchy.

Each subclass carries a stable ``code`` used in HTTP envelopes and log events,
a fallback message for callers that surface errors to a user, and optional
structured ``details`` (ids, upstream status, retry hints).
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """An error the cache core knows how to classify."""

    code: str = "DOMAIN_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: str = "", *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}

    def user_message(self) -> str:
        """The explicit message, or the class default when none was given."""
        return str(self) or self.default_message
