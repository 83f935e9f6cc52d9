# Copyright (c)
# SPDX-License-Identifier: MIT
"""Outbound clients for remote APIs."""
