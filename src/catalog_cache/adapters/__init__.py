# Copyright (c)
# SPDX-License-Identifier: MIT
"""HTTP adapters (routers, schemas)."""
