"""
Configuration management for Mall Core.

All configuration is done via environment variables. This module provides
typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set STORE_URL and STORE_API_KEY
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() and the dataclass defaults in sync
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported remote store gateways."""

    POSTGREST = "postgrest"
    MEMORY = "memory"


@dataclass(frozen=True)
class GatewayConfig:
    """Remote store gateway configuration.

    Attributes:
        url: Base URL of the PostgREST endpoint (e.g. https://x.supabase.co/rest/v1)
        api_key: Service or anon key sent as apikey and bearer token
        schema: Database schema holding the storefront tables
        timeout_seconds: Per-request timeout
    """

    url: str = ""
    api_key: str | None = None
    schema: str = "morpheus"
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> GatewayConfig:
        """Load configuration from environment variables."""
        return cls(
            url=os.getenv("STORE_URL", ""),
            api_key=os.getenv("STORE_API_KEY"),
            schema=os.getenv("STORE_SCHEMA", "morpheus"),
            timeout_seconds=float(os.getenv("STORE_TIMEOUT_SECONDS", "10")),
        )


@dataclass(frozen=True)
class MutatorConfig:
    """Collection mutator configuration.

    Attributes:
        client_generated_ids: Generate entry ids client-side (random + timestamp)
        max_insert_attempts: Attempts when a generated id collides
        max_merge_attempts: Inserts per add before a unique-constraint failure is
            raised; earlier failures are retried as merges
    """

    client_generated_ids: bool = True
    max_insert_attempts: int = 3
    max_merge_attempts: int = 2

    @classmethod
    def from_env(cls) -> MutatorConfig:
        """Load configuration from environment variables."""
        return cls(
            client_generated_ids=os.getenv("MUTATOR_CLIENT_IDS", "true").lower() == "true",
            max_insert_attempts=int(os.getenv("MUTATOR_MAX_INSERT_ATTEMPTS", "3")),
            max_merge_attempts=int(os.getenv("MUTATOR_MAX_MERGE_ATTEMPTS", "2")),
        )


@dataclass(frozen=True)
class CacheConfig:
    """View cache configuration.

    Attributes:
        max_age_seconds: Age after which a cached view is refetched (0 = never)
        approval_stats_max_age_seconds: Max age for the approval summary
    """

    max_age_seconds: float = 0.0
    approval_stats_max_age_seconds: float = 300.0

    @classmethod
    def from_env(cls) -> CacheConfig:
        """Load configuration from environment variables."""
        return cls(
            max_age_seconds=float(os.getenv("CACHE_MAX_AGE_SECONDS", "0")),
            approval_stats_max_age_seconds=float(
                os.getenv("CACHE_APPROVAL_STATS_MAX_AGE_SECONDS", "300")
            ),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class AppConfig:
    """Complete Mall Core configuration.

    Attributes:
        store_backend: Which gateway implementation to use
        gateway: Remote store configuration
        mutator: Collection mutator configuration
        cache: View cache configuration
        observability: Logging configuration
    """

    store_backend: StoreBackend = StoreBackend.POSTGREST
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    mutator: MutatorConfig = field(default_factory=MutatorConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load complete configuration from environment variables.

        Returns:
            AppConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("STORE_BACKEND", "postgrest").lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: postgrest, memory"
            )

        config = cls(
            store_backend=store_backend,
            gateway=GatewayConfig.from_env(),
            mutator=MutatorConfig.from_env(),
            cache=CacheConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.store_backend == StoreBackend.POSTGREST:
            if not self.gateway.url:
                raise ValueError("STORE_URL is required when STORE_BACKEND=postgrest")
            if not self.gateway.api_key:
                logger.warning("STORE_API_KEY is not set; requests will be anonymous")

        if self.gateway.timeout_seconds <= 0:
            raise ValueError("STORE_TIMEOUT_SECONDS must be positive")
        if self.mutator.max_insert_attempts < 1:
            raise ValueError("MUTATOR_MAX_INSERT_ATTEMPTS must be at least 1")
        if self.mutator.max_merge_attempts < 1:
            raise ValueError("MUTATOR_MAX_MERGE_ATTEMPTS must be at least 1")
        if self.cache.max_age_seconds < 0 or self.cache.approval_stats_max_age_seconds < 0:
            raise ValueError("Cache max ages cannot be negative")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Mall core configuration loaded",
            extra={
                "store_backend": self.store_backend.value,
                "store_url": self.gateway.url or None,
                "store_schema": self.gateway.schema,
                "store_api_key_set": bool(self.gateway.api_key),
                "client_generated_ids": self.mutator.client_generated_ids,
                "cache_max_age_seconds": self.cache.max_age_seconds,
                "log_level": self.observability.log_level,
            },
        )
