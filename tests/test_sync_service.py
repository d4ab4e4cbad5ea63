"""Tests for the sync orchestrator, CLI and HTTP server."""

import httpx
import pytest
from click.testing import CliRunner
from fastapi.testclient import TestClient

from marketsync import cli as cli_module
from marketsync.models.shop import Shop
from marketsync.server import create_app
from marketsync.services.sync_service import SyncService
from marketsync.utils.exceptions import ShopNotFoundError, UnsupportedPlatformError

CATALOG = {
    "products": [
        {"product_no": 1, "product_code": "MUG", "product_name": "Mug", "price": "5000", "stock_quantity": 3,
         "selling": "T"},
        {"product_no": 2, "product_code": "CUP", "product_name": "", "price": "3000", "stock_quantity": 1},
    ]
}


def catalog_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=CATALOG)


def failing_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500, text="boom")


class TestSyncService:
    """Tests for SyncService."""

    @pytest.mark.asyncio
    async def test_sync_shop(self, make_context, catalog_store):
        """Test fetch plus reconcile with one invalid record in the catalog."""
        context = make_context(catalog_handler)

        result = await SyncService(context).sync_shop("shop_cafe24_1")

        assert result.platform == "cafe24"
        assert result.fetched_count == 2
        assert result.report.valid == 1
        assert result.report.invalid == 1
        assert result.success is False
        assert result.error is None
        assert [p.code for p in catalog_store.list_products()] == ["MUG"]

    @pytest.mark.asyncio
    async def test_exhaustion_becomes_failed_result(self, make_context):
        context = make_context(failing_handler)

        result = await SyncService(context).sync_shop("shop_cafe24_1")

        assert result.success is False
        assert result.error_type == "FetchExhaustedError"
        assert "boom" in result.error

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, make_context, catalog_store):
        context = make_context(catalog_handler)

        result = await SyncService(context).sync_shop("shop_cafe24_1", dry_run=True)

        assert result.report.dry_run
        assert len(result.report.results) == 1
        assert catalog_store.list_products() == []

    @pytest.mark.asyncio
    async def test_fetch_catalog_errors(self, make_context, shop_store):
        shop_store.add_shop(Shop(id="shopify_1", platform="shopify"))
        service = SyncService(make_context(catalog_handler))

        with pytest.raises(ShopNotFoundError):
            await service.fetch_catalog("missing")
        with pytest.raises(UnsupportedPlatformError):
            await service.fetch_catalog("shopify_1")

    @pytest.mark.asyncio
    async def test_sync_all_isolates_shops(self, make_context, shop_store):
        shop_store.add_shop(Shop(id="shopify_1", platform="shopify"))
        service = SyncService(make_context(catalog_handler))

        results = {r.shop_id: r for r in await service.sync_all()}

        assert results["shop_cafe24_1"].fetched_count == 2
        assert results["shopify_1"].error_type == "UnsupportedPlatformError"

    def test_injected_empty_collaborators_are_kept(self, make_context, catalog_store, log_sink):
        """Test that an empty sink or store passed in is used, not replaced."""
        context = make_context(catalog_handler)

        assert len(log_sink) == 0
        assert context.log_sink is log_sink
        assert context.catalog_store is catalog_store
        assert context.registry.resolve("cafe24").log_sink is log_sink

    def test_import_products(self, make_context, catalog_store):
        service = SyncService(make_context(catalog_handler))

        report = service.import_products([
            {"externalId": "E1", "name": "Shirt", "price": 10000, "inventoryQuantity": 5},
        ])

        assert report.valid == 1
        assert len(catalog_store.list_variants()) == 1


class TestServer:
    """Tests for the FastAPI endpoints."""

    @pytest.fixture
    def client(self, make_context):
        context = make_context(catalog_handler)
        app = create_app(context=context, enable_scheduler=False)
        with TestClient(app) as test_client:
            yield test_client

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_products_preview(self, client):
        response = client.get("/shops/shop_cafe24_1/products")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()["products"]] == ["Mug", ""]

    def test_products_unknown_shop(self, client):
        response = client.get("/shops/missing/products")

        assert response.status_code == 404
        assert "missing" in response.json()["error"]

    def test_products_without_access_token(self, client, shop_store):
        shop_store.set_shop_credentials("shop_cafe24_1", {"access_token": None})

        response = client.get("/shops/shop_cafe24_1/products")

        assert response.status_code == 401
        assert "shop_cafe24_1" in response.json()["error"]

    def test_import_dry_run(self, client, catalog_store):
        response = client.post("/shops/shop_cafe24_1/import?dry=1")

        body = response.json()
        assert response.status_code == 200
        assert body["report"]["valid"] == 1
        assert body["preview"][0]["dry_run"] is True
        assert catalog_store.list_products() == []

    def test_refresh_endpoint(self, client, shop_store):
        async def fake_refresh(shop_id):
            shop_store.set_shop_credentials(shop_id, {"access_token": "rotated"})

        client.app.state.refreshers["cafe24"] = fake_refresh

        response = client.post("/integrations/cafe24/refresh", json={"shopId": "shop_cafe24_1"})

        assert response.status_code == 200
        assert shop_store.get_shop("shop_cafe24_1").access_token == "rotated"

    def test_refresh_unsupported_platform(self, client):
        response = client.post("/integrations/shopify/refresh", json={"shopId": "x"})

        assert response.status_code == 400

    def test_logs_newest_first(self, client, log_sink):
        log_sink.log("shop_cafe24_1", "cafe24", "info", "older")
        log_sink.log("shop_cafe24_1", "cafe24", "info", "newer")

        response = client.get("/logs?limit=1")

        assert [e["message"] for e in response.json()["logs"]] == ["newer"]


class TestCli:
    """Tests for the click CLI."""

    @pytest.fixture
    def runner(self, make_context, monkeypatch):
        context = make_context(catalog_handler)
        monkeypatch.setattr(cli_module, "build_context", lambda: context)
        return CliRunner()

    def test_sync_with_trace(self, runner):
        result = runner.invoke(cli_module.cli, ["sync", "shop_cafe24_1", "--dry-run", "--trace"])

        assert "DRY RUN MODE" in result.output
        assert "Integration log:" in result.output
        assert "request succeeded on attempt 1" in result.output
        assert result.exit_code == 1  # the catalog holds one invalid record

    def test_import_file(self, runner, tmp_path, catalog_store):
        path = tmp_path / "products.json"
        path.write_text('[{"externalId": "E1", "name": "Shirt", "price": 10000, "inventoryQuantity": 5}]')

        result = runner.invoke(cli_module.cli, ["import", str(path)])

        assert result.exit_code == 0
        assert "Valid:          1" in result.output
        assert len(catalog_store.list_products()) == 1

    def test_platforms(self, runner):
        result = runner.invoke(cli_module.cli, ["platforms"])

        assert "cafe24" in result.output.splitlines()
