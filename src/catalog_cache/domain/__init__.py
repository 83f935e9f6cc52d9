# Copyright (c)
# SPDX-License-Identifier: MIT
"""Domain layer: cache vocabulary, lookup items and error taxonomy."""
