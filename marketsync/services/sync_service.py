"""Main synchronization service orchestrator."""

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Union

from ..bootstrap import AppContext
from ..models.product import ExternalProduct
from ..models.sync_result import ImportReport, SyncResult
from ..utils.exceptions import ShopNotFoundError
from ..utils.logger import get_error_logger, get_sync_logger


class SyncService:
    """
    Main orchestrator for synchronization operations.
    Coordinates shop lookup, adapter resolution and reconciliation.
    """

    def __init__(self, context: AppContext):
        self.context = context
        self.logger = get_sync_logger()
        self.error_logger = get_error_logger()

    async def fetch_catalog(self, shop_id: str, params: Optional[Dict[str, Any]] = None) -> List[ExternalProduct]:
        """
        Fetch a shop's normalized catalog through its platform adapter.

        Raises:
            ShopNotFoundError: If the shop is unknown.
            UnsupportedPlatformError: If no adapter handles the shop's platform.
            AuthenticationError: If the shop has no access token.
            FetchExhaustedError: If the adapter gave up.
        """
        shop = self.context.shop_store.get_shop(shop_id)
        if shop is None:
            raise ShopNotFoundError(f"Shop not found: {shop_id}", details={"shop_id": shop_id})

        fetch_fn = self.context.registry.require(shop.platform)
        products = await fetch_fn(shop_id, params)
        self.logger.info(f"Fetched {len(products)} product record(s) for shop {shop_id} ({shop.platform})")
        return products

    async def sync_shop(
        self,
        shop_id: str,
        dry_run: bool = False,
        params: Optional[Dict[str, Any]] = None,
    ) -> SyncResult:
        """
        Fetch one shop's catalog and reconcile it into the internal store.

        Never raises for fetch or reconciliation failures; the returned
        result carries the cause instead.
        """
        shop = self.context.shop_store.get_shop(shop_id)
        result = SyncResult(shop_id=shop_id, platform=shop.platform if shop else None)

        self.logger.info("=" * 60)
        self.logger.info(f"Starting {'dry-run ' if dry_run else ''}sync for shop {shop_id}")
        self.logger.info("=" * 60)

        try:
            products = await self.fetch_catalog(shop_id, params)
        except Exception as e:
            result.fail(e)
            result.finalize()
            self.error_logger.error(f"Sync failed for shop {shop_id}: {result.error}")
            return result

        result.fetched_count = len(products)
        result.report = self.context.engine.upsert_batch(products, dry_run=dry_run, shop_id=shop_id)
        result.finalize()

        for error in result.report.errors:
            self.error_logger.error(f"Sync error for {shop_id}/{error.reference}: {error.message}")

        self.logger.info(result.get_summary())
        return result

    async def sync_all(self, dry_run: bool = False) -> List[SyncResult]:
        """Sync every known shop concurrently; shops fail independently."""
        shops = self.context.shop_store.list_shops()
        if not shops:
            self.logger.warning("No shops configured, nothing to sync")
            return []

        return list(await asyncio.gather(*(self.sync_shop(shop.id, dry_run=dry_run) for shop in shops)))

    def import_products(
        self,
        records: Iterable[Union[ExternalProduct, Dict[str, Any]]],
        dry_run: bool = False,
        shop_id: Optional[str] = None,
    ) -> ImportReport:
        """Reconcile records supplied directly (e.g. from an export file)."""
        return self.context.engine.upsert_batch(records, dry_run=dry_run, shop_id=shop_id)
