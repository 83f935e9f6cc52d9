# Copyright (c)
# SPDX-License-Identifier: MIT
"""Domain enumerations."""

from __future__ import annotations

from .lookup import ItemState, LookupType, ValidationTarget, validation_kind_for
from .resource_kind import ResourceKind

__all__ = [
    "ItemState",
    "LookupType",
    "ResourceKind",
    "ValidationTarget",
    "validation_kind_for",
]
