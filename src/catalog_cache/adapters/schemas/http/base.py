# Copyright (c)
# SPDX-License-Identifier: MIT
"""Pydantic base for the control-surface request and response models.

Bodies with unknown fields are rejected and enums serialize as their values.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseHTTPSchema(BaseModel):
    """Base model for the cache HTTP schemas."""

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=True,
    )
