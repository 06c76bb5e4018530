"""
Unit tests for configuration loading.

Tests cover:
- Defaults
- Environment overrides
- Validation failures
"""

import logging

import pytest

from storefront.mall_core.config import (
    AppConfig,
    CacheConfig,
    GatewayConfig,
    MutatorConfig,
    StoreBackend,
)

ENV_VARS = [
    "STORE_BACKEND",
    "STORE_URL",
    "STORE_API_KEY",
    "STORE_SCHEMA",
    "STORE_TIMEOUT_SECONDS",
    "MUTATOR_CLIENT_IDS",
    "MUTATOR_MAX_INSERT_ATTEMPTS",
    "MUTATOR_MAX_MERGE_ATTEMPTS",
    "CACHE_MAX_AGE_SECONDS",
    "CACHE_APPROVAL_STATS_MAX_AGE_SECONDS",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all Mall Core settings from the environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestAppConfig:
    """Tests for AppConfig."""

    def test_memory_backend_defaults(self, clean_env):
        clean_env.setenv("STORE_BACKEND", "memory")

        config = AppConfig.from_env()

        assert config.store_backend == StoreBackend.MEMORY
        assert config.gateway.schema == "morpheus"
        assert config.mutator.client_generated_ids is True
        assert config.mutator.max_merge_attempts == 2
        assert config.cache.approval_stats_max_age_seconds == 300.0
        assert config.observability.log_level == "INFO"

    def test_postgrest_from_env(self, clean_env):
        clean_env.setenv("STORE_URL", "https://x.supabase.co/rest/v1")
        clean_env.setenv("STORE_API_KEY", "key")
        clean_env.setenv("STORE_SCHEMA", "mall")
        clean_env.setenv("STORE_TIMEOUT_SECONDS", "2.5")
        clean_env.setenv("MUTATOR_CLIENT_IDS", "false")
        clean_env.setenv("CACHE_MAX_AGE_SECONDS", "30")

        config = AppConfig.from_env()

        assert config.store_backend == StoreBackend.POSTGREST
        assert config.gateway == GatewayConfig(
            url="https://x.supabase.co/rest/v1",
            api_key="key",
            schema="mall",
            timeout_seconds=2.5,
        )
        assert config.mutator.client_generated_ids is False
        assert config.cache.max_age_seconds == 30.0

    def test_invalid_backend(self, clean_env):
        clean_env.setenv("STORE_BACKEND", "mongo")

        with pytest.raises(ValueError, match="STORE_BACKEND"):
            AppConfig.from_env()

    def test_postgrest_requires_url(self, clean_env):
        with pytest.raises(ValueError, match="STORE_URL"):
            AppConfig.from_env()

    @pytest.mark.parametrize(
        "config",
        [
            AppConfig(store_backend=StoreBackend.MEMORY, gateway=GatewayConfig(timeout_seconds=0)),
            AppConfig(store_backend=StoreBackend.MEMORY, mutator=MutatorConfig(max_insert_attempts=0)),
            AppConfig(store_backend=StoreBackend.MEMORY, mutator=MutatorConfig(max_merge_attempts=0)),
            AppConfig(store_backend=StoreBackend.MEMORY, cache=CacheConfig(max_age_seconds=-1)),
        ],
    )
    def test_validate_rejects(self, config):
        with pytest.raises(ValueError):
            config.validate()

    def test_log_config_redacts_key(self, caplog):
        config = AppConfig(gateway=GatewayConfig(url="https://x", api_key="super-secret"))

        with caplog.at_level(logging.INFO, logger="storefront.mall_core.config"):
            config.log_config()

        record = caplog.records[-1]
        assert record.store_api_key_set is True
        assert "super-secret" not in repr(record.__dict__)
