# Copyright (c)
# SPDX-License-Identifier: MIT
"""HTTP routers."""

from __future__ import annotations

from .cache_router import router as cache_router  # noqa: F401
