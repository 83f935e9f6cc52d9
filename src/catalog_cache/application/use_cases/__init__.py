# Copyright (c)
# SPDX-License-Identifier: MIT
"""Application use cases."""
