# Copyright (c)
# SPDX-License-Identifier: MIT
"""Pure domain services."""
