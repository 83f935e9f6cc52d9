# Copyright (c)
# SPDX-License-Identifier: MIT
"""Dependency wiring (composition root and FastAPI providers)."""
