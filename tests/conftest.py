"""Pytest configuration and fixtures."""

import os

# Console-only logging while testing; file handlers are skipped in production.
os.environ.setdefault("ENVIRONMENT", "production")

from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from marketsync.bootstrap import build_context
from marketsync.models.product import ExternalProduct
from marketsync.models.shop import Shop
from marketsync.stores.catalog_store import InMemoryCatalogStore
from marketsync.stores.log_sink import LogSink
from marketsync.stores.shop_store import InMemoryShopStore
from marketsync.utils.config import AppConfig


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def app_config():
    """Default configuration without reading config/config.yml."""
    config = AppConfig(config_path=Path("does-not-exist.yml"))
    config.env.environment = "test"
    config.env.dev_catalog = False
    config.yaml.fetch.max_attempts = 3
    return config


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def log_sink():
    """LogSink whose stdlib channels are mocks."""
    return LogSink(mirror=MagicMock(), fallback=MagicMock())


@pytest.fixture
def cafe24_shop():
    return Shop(
        id="shop_cafe24_1",
        platform="cafe24",
        name="fulgo-shop",
        credentials={
            "mall_id": "fulgo",
            "access_token": "old-token",
            "refresh_token": "refresh-1",
            "client_id": "client",
            "client_secret": "secret",
        },
    )


@pytest.fixture
def shop_store(cafe24_shop):
    return InMemoryShopStore([cafe24_shop])


@pytest.fixture
def catalog_store():
    return InMemoryCatalogStore()


@pytest.fixture
def make_context(app_config, shop_store, catalog_store, log_sink, fake_sleep):
    """Build an AppContext around a request handler for httpx.MockTransport."""

    def _make(handler):
        return build_context(
            config=app_config,
            shop_store=shop_store,
            catalog_store=catalog_store,
            log_sink=log_sink,
            transport=httpx.MockTransport(handler),
            sleep=fake_sleep,
        )

    return _make


@pytest.fixture
def shirt():
    """External product with two options."""
    return ExternalProduct(
        external_id="E1",
        name="Shirt",
        price=10000,
        inventory_quantity=5,
        option_map={"color": "red", "size": "M"},
    )


@pytest.fixture
def cafe24_product_payload():
    """Raw Cafe24 product with two option variants."""
    return {
        "product_no": 101,
        "product_code": "P0000BAA",
        "product_name": "Linen shirt",
        "price": "25000.00",
        "stock_quantity": 7,
        "selling": "T",
        "detail_image": "https://img.example.com/detail.jpg",
        "list_image": "https://img.example.com/list.jpg",
        "updated_date": "2025-09-14T10:00:00+09:00",
        "variants": [
            {
                "variant_code": "P0000BAA000A",
                "options": [{"name": "color", "value": "white"}, {"name": "size", "value": "M"}],
                "quantity": 3,
                "additional_amount": "0.00",
            },
            {
                "variant_code": "P0000BAA000B",
                "options": [{"name": "color", "value": "white"}, {"name": "size", "value": "L"}],
                "quantity": 4,
                "additional_amount": "1000.00",
            },
        ],
    }
