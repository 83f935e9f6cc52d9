# Copyright (c)
# SPDX-License-Identifier: MIT
"""Settings for the catalog cache.

Everything tunable lives here: TTLs per resource kind, the in-memory entry
bound, the persistent backend, prefetch throttling and concurrency, and the
logging level. Unknown keys in a ``.env`` file are rejected at startup.

Only the composition root and the HTTP adapter read the environment. Services
get plain values through their constructors, so tests build them directly
without touching ``os.environ``.
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from catalog_cache.domain.value_objects.cache_policy import (
    TTL_DAY_S,
    TTL_HOUR_S,
    TTL_WEEK_S,
    PolicyRegistry,
    default_policies,
)

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Logical deployment environment."""

    DEVELOPMENT = "development"
    TEST = "test"
    CI = "ci"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Typed configuration for the catalog cache.

    Adapters and the composition root may read environment variables; other
    layers receive values derived from this object through dependency
    injection.
    """

    # ---------------------------
    # Core environment
    # ---------------------------
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Logical deployment environment.",
        validation_alias="ENVIRONMENT",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level.",
        validation_alias="LOG_LEVEL",
    )
    service_name: str = Field(
        default="catalog-cache",
        description="Service name reported by the health endpoint.",
        validation_alias="SERVICE_NAME",
    )

    # ---------------------------
    # Persistence backend
    # ---------------------------
    redis_url: str | None = Field(
        default=None,
        description="Redis URL for persisted cache entries. Unset -> in-memory backend.",
        validation_alias="REDIS_URL",
    )
    redis_health_check_interval_s: int = Field(
        default=15,
        ge=1,
        le=3600,
        description="Health check interval for Redis clients in seconds.",
        validation_alias="REDIS_HEALTH_CHECK_INTERVAL_S",
    )
    redis_socket_timeout_s: float = Field(
        default=3.0,
        ge=0.1,
        le=60.0,
        description="Socket timeout in seconds for Redis commands.",
        validation_alias="REDIS_SOCKET_TIMEOUT_S",
    )
    redis_socket_connect_timeout_s: float = Field(
        default=3.0,
        ge=0.1,
        le=60.0,
        description="Socket connect timeout in seconds for Redis.",
        validation_alias="REDIS_SOCKET_CONNECT_TIMEOUT_S",
    )

    # ---------------------------
    # Cache store
    # ---------------------------
    cache_persistence_enabled: bool = Field(
        default=True,
        description="Write persistent-policy entries to the key/value backend.",
        validation_alias="CACHE_PERSISTENCE_ENABLED",
    )
    cache_max_entries: int | None = Field(
        default=None,
        ge=1,
        description="Optional in-memory entry cap (LRU eviction on top of TTL).",
        validation_alias="CACHE_MAX_ENTRIES",
    )
    cache_ttl_catalog_s: float = Field(
        default=TTL_WEEK_S,
        ge=0,
        description="TTL for catalog lists and offering lists.",
        validation_alias="CACHE_TTL_CATALOG_S",
    )
    cache_ttl_offering_s: float = Field(
        default=TTL_WEEK_S,
        ge=0,
        description="TTL for offering details, flavor lists and flavor details.",
        validation_alias="CACHE_TTL_OFFERING_S",
    )
    cache_ttl_validation_s: float = Field(
        default=TTL_DAY_S,
        ge=0,
        description="TTL for catalog/offering/flavor validity verdicts.",
        validation_alias="CACHE_TTL_VALIDATION_S",
    )
    cache_ttl_api_response_s: float = Field(
        default=TTL_HOUR_S,
        ge=0,
        description="TTL for generic API responses.",
        validation_alias="CACHE_TTL_API_RESPONSE_S",
    )

    # ---------------------------
    # Request coordinator
    # ---------------------------
    coordinator_timeout_s: float | None = Field(
        default=None,
        gt=0,
        description="Default per-caller wait limit for coordinated fetches (unset -> wait).",
        validation_alias="COORDINATOR_TIMEOUT_S",
    )

    # ---------------------------
    # Prefetch scheduler
    # ---------------------------
    prefetch_concurrency: int = Field(
        default=3,
        ge=1,
        le=64,
        description="Maximum prefetch items processed concurrently.",
        validation_alias="PREFETCH_CONCURRENCY",
    )
    prefetch_retry_attempts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries per item for transient failures.",
        validation_alias="PREFETCH_RETRY_ATTEMPTS",
    )
    prefetch_retry_delay_s: float = Field(
        default=1.0,
        ge=0,
        description="Base delay for jittered exponential retry backoff.",
        validation_alias="PREFETCH_RETRY_DELAY_S",
    )
    prefetch_throttle_interval_s: float = Field(
        default=5.0,
        ge=0,
        description="Minimum spacing between prefetch passes.",
        validation_alias="PREFETCH_THROTTLE_INTERVAL_S",
    )
    prefetch_item_delay_s: float = Field(
        default=0.2,
        ge=0,
        description="Delay between consecutive items handled by one worker slot.",
        validation_alias="PREFETCH_ITEM_DELAY_S",
    )
    prefetch_max_catalogs: int = Field(
        default=50,
        ge=0,
        description="Catalog items processed per pass.",
        validation_alias="PREFETCH_MAX_CATALOGS",
    )
    prefetch_max_offerings: int = Field(
        default=20,
        ge=0,
        description="Offering items processed per pass.",
        validation_alias="PREFETCH_MAX_OFFERINGS",
    )
    prefetch_max_flavors: int = Field(
        default=30,
        ge=0,
        description="Flavor items processed per pass.",
        validation_alias="PREFETCH_MAX_FLAVORS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="forbid",
        case_sensitive=False,
    )

    def cache_policies(self) -> PolicyRegistry:
        """Return the default policy registry with configured TTLs applied."""
        return default_policies().override(
            catalog_list=self.cache_ttl_catalog_s,
            offering_list=self.cache_ttl_catalog_s,
            offering_detail=self.cache_ttl_offering_s,
            flavor_list=self.cache_ttl_offering_s,
            flavor_detail=self.cache_ttl_offering_s,
            catalog_validity=self.cache_ttl_validation_s,
            offering_validity=self.cache_ttl_validation_s,
            flavor_validity=self.cache_ttl_validation_s,
            api_response=self.cache_ttl_api_response_s,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process.

    Raises:
        RuntimeError: If configuration is invalid.
    """
    try:
        settings = Settings()
    except ValidationError as exc:
        logger.exception("settings.invalid")
        raise RuntimeError(f"invalid catalog cache configuration: {exc}") from exc
    logger.info(
        "settings.loaded",
        extra={
            "extra": {
                "environment": settings.environment.value,
                "redis_url_set": bool(settings.redis_url),
                "persistence": settings.cache_persistence_enabled,
                "max_entries": settings.cache_max_entries,
                "prefetch": {
                    "concurrency": settings.prefetch_concurrency,
                    "throttle_interval_s": settings.prefetch_throttle_interval_s,
                    "max_offerings": settings.prefetch_max_offerings,
                },
            }
        },
    )
    return settings
