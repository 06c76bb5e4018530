"""
Mall Core - component wiring and logging setup.

build_service() assembles the components in dependency order:
- Store gateway (PostgREST or in-memory)
- Invalidation graph, frozen, and the cache coordinator over it
- Collection mutator
- MallService exposing the operations

Usage:
    python -m storefront.mall_core.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The invalidation graph is frozen before the service is returned
    - All components share one gateway and one coordinator

How to change safely:
    - Add new components here rather than constructing them ad hoc
"""

from __future__ import annotations

import asyncio
import logging
import sys

import json_log_formatter

from .cache import CacheCoordinator, build_default_graph
from .config import AppConfig
from .gateway import StoreGateway, create_gateway
from .mutate import CollectionMutator, random_timestamp_id
from .service import MallService

logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Application configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_service(
    config: AppConfig | None = None,
    gateway: StoreGateway | None = None,
) -> MallService:
    """Wire a MallService from configuration.

    Args:
        config: Application configuration (loaded from env if not provided)
        gateway: Optional gateway overriding the configured backend

    Returns:
        Ready-to-use service
    """
    config = config or AppConfig.from_env()
    gateway = gateway or create_gateway(config)

    graph = build_default_graph()
    coordinator = CacheCoordinator(graph, max_age_seconds=config.cache.max_age_seconds)
    mutator = CollectionMutator(
        gateway,
        coordinator,
        config=config.mutator,
        id_factory=random_timestamp_id,
    )
    logger.info(
        "Mall core service built",
        extra={"store_backend": config.store_backend.value, "mutation_kinds": len(list(graph))},
    )
    return MallService(gateway, coordinator, mutator, config=config)


async def _check_store(service: MallService) -> None:
    try:
        summary = await service.get_approval_stats()
        logger.info("Store reachable", extra=summary.to_dict())
    finally:
        await service.close()


def main() -> None:
    """Validate configuration and probe the store."""
    try:
        config = AppConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    asyncio.run(_check_store(build_service(config)))


if __name__ == "__main__":
    main()
