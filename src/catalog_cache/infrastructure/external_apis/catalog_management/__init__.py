# Copyright (c)
# SPDX-License-Identifier: MIT
"""IBM Cloud catalog management transport and resource adapters."""

from __future__ import annotations

from .client import CatalogManagementClient
from .resource_client import CatalogResourceClient
from .settings import CatalogManagementSettings

__all__ = ["CatalogManagementClient", "CatalogManagementSettings", "CatalogResourceClient"]
