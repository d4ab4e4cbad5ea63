"""Process-start wiring.

Stores, the log sink and the adapter registry are created once here and
passed by reference; nothing in the package keeps them in module globals.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import httpx

from .adapters.registry import AdapterRegistry, build_default_registry
from .services.reconciliation import ReconciliationEngine
from .stores.catalog_store import CatalogStore, InMemoryCatalogStore
from .stores.log_sink import LogSink
from .stores.shop_store import InMemoryShopStore, ShopStore, load_shops
from .utils.config import AppConfig, get_config
from .utils.logger import get_sync_logger


@dataclass
class AppContext:
    """Everything a sync needs, built once per process."""

    config: AppConfig
    shop_store: ShopStore
    catalog_store: CatalogStore
    log_sink: LogSink
    registry: AdapterRegistry
    engine: ReconciliationEngine

    async def close(self):
        await self.registry.close()


def build_context(
    config: Optional[AppConfig] = None,
    shop_store: Optional[ShopStore] = None,
    catalog_store: Optional[CatalogStore] = None,
    log_sink: Optional[LogSink] = None,
    registry: Optional[AdapterRegistry] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> AppContext:
    """
    Build the application context.

    Any collaborator can be supplied (tests pass in-memory stores and a
    mock transport); the rest is built from configuration.
    """
    if config is None:
        config = get_config()
    logger = get_sync_logger()

    if shop_store is None:
        shops = load_shops(Path(config.env.shops_file))
        shop_store = InMemoryShopStore(shops)
        logger.info(f"Loaded {len(shops)} shop(s) from {config.env.shops_file}")

    if catalog_store is None:
        catalog_store = InMemoryCatalogStore()
    if log_sink is None:
        log_sink = LogSink(max_entries=config.logging.sink_max_entries)

    if registry is None:
        registry = build_default_registry(shop_store, log_sink, config=config, transport=transport, sleep=sleep)
    logger.info(f"Registered adapters: {', '.join(registry.platforms()) or 'none'}")

    return AppContext(
        config=config,
        shop_store=shop_store,
        catalog_store=catalog_store,
        log_sink=log_sink,
        registry=registry,
        engine=ReconciliationEngine(catalog_store, log_sink),
    )
