# Copyright (c)
# SPDX-License-Identifier: MIT
"""HTTP schemas."""
