# Copyright (c)
# SPDX-License-Identifier: MIT
"""Application layer: cache core services and explicit lookup use cases."""
