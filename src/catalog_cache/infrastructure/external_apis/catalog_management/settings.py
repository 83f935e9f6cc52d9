# Copyright (c)
# SPDX-License-Identifier: MIT
"""Pydantic settings for the catalog management transport client."""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class CatalogManagementSettings(BaseSettings):
    """Configuration for the IBM Cloud catalog management client.

    Environment variables (with ``model_config.env_prefix``):

    * ``CATALOG_API_BASE_URL``
    * ``CATALOG_API_IAM_URL``
    * ``CATALOG_API_API_KEY``
    * ``CATALOG_API_TIMEOUT_S``
    * ``CATALOG_API_MAX_RETRIES``
    * ``CATALOG_API_PAGE_LIMIT``
    * ``CATALOG_API_PAGE_DELAY_S``
    """

    base_url: str = Field(
        "https://cm.globalcatalog.cloud.ibm.com/api/v1-beta",
        description="Base URL of the catalog management API.",
    )
    iam_url: str = Field(
        "https://iam.cloud.ibm.com/identity/token",
        description="IAM token endpoint used to exchange the API key for a bearer token.",
    )
    api_key: SecretStr | None = Field(
        None,
        description="IBM Cloud API key. Without it every call fails with an auth error.",
    )
    timeout_s: float = Field(
        30.0,
        description="Per-request timeout in seconds for the transport client.",
    )
    max_retries: int = Field(
        3,
        description="Maximum number of retry attempts for retryable failures.",
    )
    page_limit: int = Field(
        1000,
        ge=1,
        le=1000,
        description="Page size for offering listings (API maximum is 1000).",
    )
    page_delay_s: float = Field(
        0.2,
        ge=0,
        description="Pause between consecutive listing pages.",
    )
    token_refresh_margin_s: float = Field(
        60.0,
        ge=0,
        description="Refresh the bearer token this many seconds before it expires.",
    )

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_prefix="CATALOG_API_",
        extra="ignore",
    )
