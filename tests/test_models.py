"""Tests for data models."""

import pytest

from marketsync.models.log_entry import LogLevel
from marketsync.models.product import ExternalProduct, InternalProduct, InternalVariant
from marketsync.models.shop import Shop
from marketsync.models.sync_result import ImportReport, SyncResult
from marketsync.utils.exceptions import FetchExhaustedError


class TestExternalProduct:
    """Tests for ExternalProduct model."""

    def test_from_dict_accepts_camel_case(self):
        """Test the camelCase names used by adapters and import files."""
        ep = ExternalProduct.from_dict({
            "externalId": "E1",
            "name": "Shirt",
            "price": 10000,
            "inventoryQuantity": 5,
            "optionMap": {"color": "red"},
            "isSelling": False,
        })

        assert ep.external_id == "E1"
        assert ep.inventory_quantity == 5
        assert ep.option_map == {"color": "red"}
        assert ep.is_selling is False
        assert ep.has_options

    def test_from_dict_accepts_legacy_importer_keys(self):
        """Test product_no / inventory / image keys of export files."""
        ep = ExternalProduct.from_dict({
            "product_no": 42,
            "name": "Mug",
            "price": 5000,
            "inventory": 3,
            "image": "https://img.example.com/mug.jpg",
        })

        assert ep.external_id == "42"
        assert ep.code == 42
        assert ep.inventory_quantity == 3
        assert ep.images == ["https://img.example.com/mug.jpg"]
        assert not ep.has_options

    def test_from_dict_wraps_scalar_images_and_barcodes(self):
        """Test that a lone string is one item, not a list of characters."""
        ep = ExternalProduct.from_dict({
            "externalId": "E7",
            "name": "Cap",
            "price": 100,
            "inventoryQuantity": 1,
            "images": "https://img.example.com/cap.jpg",
            "barcode": "8801234567890",
        })

        assert ep.images == ["https://img.example.com/cap.jpg"]
        assert ep.barcodes == ["8801234567890"]

    def test_from_dict_leaves_other_scalars_for_validation(self):
        ep = ExternalProduct.from_dict({"externalId": "E8", "name": "Cap", "barcodes": 5, "images": ""})

        assert ep.barcodes == 5
        assert ep.images == []

    def test_to_dict(self, shirt):
        """Test converting ExternalProduct to dictionary."""
        data = shirt.to_dict()

        assert data["external_id"] == "E1"
        assert data["option_map"] == {"color": "red", "size": "M"}
        assert data["barcodes"] == []


class TestInternalModels:
    """Tests for InternalProduct and InternalVariant."""

    def test_variant_requires_sku(self):
        """Test that empty SKU raises ValueError."""
        with pytest.raises(ValueError, match="SKU cannot be empty"):
            InternalVariant(id="var-1", product_id="prd-1", sku="")

    def test_product_dict_round_trip_keeps_timestamps(self):
        """Test InternalProduct serialization preserves creation time."""
        product = InternalProduct(id="prd-1", name="Shirt", code="SH-1")

        restored = InternalProduct.from_dict(product.to_dict())

        assert restored.id == "prd-1"
        assert restored.created_at == product.created_at


class TestShop:
    """Tests for Shop model."""

    def test_platform_is_normalized(self):
        shop = Shop(id="s1", platform="Cafe24")

        assert shop.platform == "cafe24"
        assert shop.name == "s1"

    def test_copy_does_not_share_credentials(self):
        shop = Shop(id="s1", platform="cafe24", credentials={"access_token": "a"})

        clone = shop.copy()
        clone.credentials["access_token"] = "b"

        assert shop.access_token == "a"

    def test_to_dict_redacts_secrets(self):
        shop = Shop(id="s1", platform="cafe24", credentials={"access_token": "a", "shop_no": None})

        data = shop.to_dict()

        assert data["credentials"]["access_token"] == "***"
        assert data["credentials"]["shop_no"] is None
        assert shop.to_dict(redact=False)["credentials"]["access_token"] == "a"


class TestLogLevel:
    """Tests for LogLevel parsing."""

    def test_parse_aliases(self):
        assert LogLevel.parse("WARNING") is LogLevel.WARN
        assert LogLevel.parse("info") is LogLevel.INFO

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            LogLevel.parse("fatal")


class TestImportReport:
    """Tests for ImportReport model."""

    def test_invalid_and_failed_are_counted_separately(self):
        """Test that validation and write failures land in different counters."""
        report = ImportReport(total=3, valid=2)
        report.add_invalid("E1", ["name-required"])
        report.add_failure("E2", "PersistenceError", "duplicate sku")

        assert report.invalid == 1
        assert report.failed == 1
        assert len(report.errors) == 2
        assert report.errors[1].reasons == ["persistence-error"]

    def test_to_dict_written_shape(self):
        """Test the written products/variants section."""
        report = ImportReport(total=1, valid=1)
        report.written_products.append("prd-1")
        report.written_variants.append("var-2")

        data = report.to_dict()

        assert data["written"] == {"products": ["prd-1"], "variants": ["var-2"]}
        assert data["errors"] == []


class TestSyncResult:
    """Tests for SyncResult model."""

    def test_fail_records_cause(self):
        """Test that a hard failure keeps the exception message and type."""
        result = SyncResult(shop_id="s1")
        result.fail(FetchExhaustedError("no success after 10 attempts", attempts=10))
        result.finalize()

        assert result.success is False
        assert result.error == "no success after 10 attempts"
        assert result.error_type == "FetchExhaustedError"
        assert result.end_time is not None

    def test_finalize_marks_item_errors_as_failure(self):
        result = SyncResult(shop_id="s1")
        result.report.add_invalid("E1", ["price-must-be-number"])

        result.finalize()

        assert result.success is False
        assert result.duration >= 0

    def test_get_summary(self):
        result = SyncResult(shop_id="s1", platform="cafe24", fetched_count=2)
        result.finalize()

        summary = result.get_summary()

        assert "Shop s1 (cafe24)" in summary
        assert "Fetched: 2" in summary
