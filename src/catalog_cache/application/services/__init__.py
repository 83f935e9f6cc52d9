# Copyright (c)
# SPDX-License-Identifier: MIT
"""Core application services."""
