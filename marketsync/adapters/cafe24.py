"""Cafe24 platform adapter (reference implementation of the adapter contract)."""

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .base import PlatformAdapter
from ..api.cafe24_client import Cafe24Client
from ..models.product import ExternalProduct
from ..services.fetch_protocol import ResilientFetch, backoff_delay
from ..services.token_refresh import Cafe24TokenRefresher, RemoteTokenRefresher
from ..stores.log_sink import LogSink
from ..stores.shop_store import ShopStore
from ..utils.config import AppConfig, get_config
from ..utils.exceptions import AuthenticationError, ShopNotFoundError

ADAPTER_NAME = "cafe24"

# Served instead of a network fetch when the dev catalog flag is on.
DEV_CATALOG: List[Dict[str, Any]] = [
    {"product_no": "dev_001", "product_code": "DEV001", "product_name": "[DEV] Sample product 1",
     "price": "10000.00", "stock_quantity": 5, "selling": "T", "updated_date": "2025-09-14"},
    {"product_no": "dev_002", "product_code": "DEV002", "product_name": "[DEV] Sample product 2",
     "price": "20000.00", "stock_quantity": 2, "selling": "T", "updated_date": "2025-09-13"},
]

_IMAGE_FIELDS = ("detail_image", "list_image", "small_image", "tiny_image")


def _flag(value: Any) -> bool:
    """Cafe24 encodes booleans as "T"/"F"."""
    if isinstance(value, str):
        return value.upper() in ("T", "Y", "TRUE", "1")
    return bool(value)


def _number(value: Any) -> Any:
    """Parse Cafe24 decimal strings; unparsable values pass through for validation."""
    if value is None or value == "":
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return value
    return int(parsed) if parsed.is_integer() else parsed


def _options(variant: Dict[str, Any]) -> Dict[str, str]:
    return {
        str(opt.get("name")): str(opt.get("value"))
        for opt in variant.get("options") or []
        if opt.get("name") is not None
    }


class Cafe24Adapter(PlatformAdapter):
    """Fetch Cafe24 products through the resilient fetch protocol."""

    name = ADAPTER_NAME

    def __init__(
        self,
        shop_store: ShopStore,
        log_sink: LogSink,
        client: Cafe24Client,
        refresher: Callable[[str], Awaitable[Any]],
        config: Optional[AppConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.shop_store = shop_store
        self.log_sink = log_sink
        self.client = client
        self.refresher = refresher
        self.config = config or get_config()
        self.sleep = sleep

    async def fetch_products(
        self,
        shop_id: str,
        params: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[ExternalProduct]:
        """
        Fetch the shop's catalog page by page.

        Offsets advance by the page limit until a page comes back short.
        Each page gets its own retry budget; an exhausted page fails the
        whole fetch.

        Raises:
            ShopNotFoundError: If the shop is unknown.
            AuthenticationError: If the shop has no access token at all.
            FetchExhaustedError: If every attempt failed.
        """
        shop = self.shop_store.get_shop(shop_id)
        if shop is None:
            raise ShopNotFoundError(f"Shop not found: {shop_id}", details={"shop_id": shop_id})

        if self.config.dev_catalog_enabled:
            self.log_sink.log(shop_id, self.name, "info", "dev catalog enabled, returning fixed products",
                              {"count": len(DEV_CATALOG)})
            return [record for raw in DEV_CATALOG for record in self.normalize(raw)]

        if not shop.access_token:
            self.log_sink.log(shop_id, self.name, "error", "no access token configured")
            raise AuthenticationError(f"No access token for shop {shop_id}", details={"shop_id": shop_id})

        mall_id = shop.credentials.get("mall_id", shop_id)
        shop_no = shop.credentials.get("shop_no", 1)
        query: Dict[str, Any] = {"embed": "variants", "limit": self.config.cafe24.page_limit}
        query.update(params or {})
        # A caller-supplied offset asks for that one page only.
        single_page = "offset" in query
        page_limit = max(int(query["limit"]), 1)
        offset = int(query.get("offset", 0))

        products: List[ExternalProduct] = []
        for _ in range(self.config.cafe24.max_pages):
            page_query = dict(query, offset=offset)
            raw_items: List[Dict[str, Any]] = []
            products.extend(await self._fetch_page(shop_id, shop, mall_id, shop_no, page_query, raw_items,
                                                   cancel_event))
            if single_page or len(raw_items) < page_limit:
                break
            offset += page_limit
        else:
            self.log_sink.log(shop_id, self.name, "warn", "page limit reached, catalog may be truncated",
                              {"pages": self.config.cafe24.max_pages, "offset": offset})
        return products

    async def _fetch_page(
        self,
        shop_id: str,
        shop: Any,
        mall_id: str,
        shop_no: Any,
        page_query: Dict[str, Any],
        raw_items: List[Dict[str, Any]],
        cancel_event: Optional[asyncio.Event],
    ) -> List[ExternalProduct]:
        """Fetch one listing page under its own retry budget; ``raw_items`` receives the page as returned."""

        async def request(attempt: int) -> httpx.Response:
            # Re-read on every attempt so a refreshed token is used.
            current = self.shop_store.get_shop(shop_id) or shop
            token = current.access_token or shop.access_token
            return await self.client.list_products(mall_id, token, shop_no=shop_no, params=page_query)

        def parse(response: httpx.Response) -> List[ExternalProduct]:
            raw_items[:] = self.client.extract_products(response)
            return [record for raw in raw_items for record in self.normalize(raw)]

        fetch_config = self.config.fetch
        fetch = ResilientFetch(
            shop_id=shop_id,
            adapter_name=self.name,
            request=request,
            refresh=self.refresher,
            parse=parse,
            log_sink=self.log_sink,
            max_attempts=fetch_config.max_attempts,
            backoff=partial(backoff_delay, base=fetch_config.backoff_base, ceiling=fetch_config.backoff_ceiling),
            sleep=self.sleep,
            cancel_event=cancel_event,
        )
        return await fetch.run()

    def normalize(self, raw: Dict[str, Any]) -> List[ExternalProduct]:
        """
        Map a Cafe24 product to ``ExternalProduct`` records.

        Products with embedded option variants yield one record per variant,
        all sharing the product's external id.
        """
        external_id = str(raw.get("product_no") or raw.get("id") or "")
        images: List[str] = []
        for key in _IMAGE_FIELDS:
            url = raw.get(key)
            if url and url not in images:
                images.append(url)

        category = raw.get("category_name")
        if category is None and raw.get("category"):
            first = raw["category"][0]
            category = str(first.get("category_no")) if isinstance(first, dict) else str(first)

        base = dict(
            external_id=external_id,
            name=raw.get("product_name") or raw.get("name") or "",
            price=_number(raw.get("price", raw.get("retail_price"))),
            inventory_quantity=_number(raw.get("stock_quantity", raw.get("inventory"))),
            is_selling=_flag(raw.get("selling", False)),
            code=raw.get("product_code") or raw.get("custom_product_code") or external_id or None,
            images=images,
            category=category,
            brand=raw.get("brand_code") or raw.get("brand"),
            description=raw.get("summary_description") or raw.get("simple_description"),
            url=raw.get("product_url"),
            last_updated=raw.get("updated_date") or raw.get("updated_at"),
            barcodes=[str(raw["barcode"])] if raw.get("barcode") else [],
            hs_code=raw.get("hscode"),
            origin=raw.get("made_in_code"),
        )

        variants = [v for v in raw.get("variants") or [] if _options(v)]
        if not variants:
            return [ExternalProduct(**base)]

        records = []
        for variant in variants:
            fields = dict(base)
            fields["option_map"] = _options(variant)
            if variant.get("quantity") is not None:
                fields["inventory_quantity"] = _number(variant["quantity"])
            extra = _number(variant.get("additional_amount"))
            if extra and isinstance(extra, (int, float)) and isinstance(base["price"], (int, float)):
                fields["price"] = base["price"] + extra
            if variant.get("barcode"):
                fields["barcodes"] = [str(variant["barcode"])]
            records.append(ExternalProduct(**fields))
        return records

    async def close(self):
        await self.client.close()
        if isinstance(self.refresher, RemoteTokenRefresher):
            await self.refresher.close()


def create_cafe24_adapter(
    shop_store: ShopStore,
    log_sink: LogSink,
    config: Optional[AppConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Cafe24Adapter:
    """Build the adapter with the refresh strategy named in config."""
    config = config or get_config()
    client = Cafe24Client(transport=transport)

    if config.refresh.mode == "remote":
        refresher = RemoteTokenRefresher(ADAPTER_NAME, transport=transport)
    else:
        refresher = Cafe24TokenRefresher(shop_store, client)

    return Cafe24Adapter(shop_store, log_sink, client, refresher, config=config, sleep=sleep)
