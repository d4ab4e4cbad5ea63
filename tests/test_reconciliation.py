"""Tests for the reconciliation engine."""

import pytest

from marketsync.models.product import ExternalProduct, InternalProduct
from marketsync.services.reconciliation import (
    ReconciliationEngine,
    derive_sku,
    option_key,
    validate_external_product,
)
from marketsync.stores.catalog_store import InMemoryCatalogStore
from marketsync.utils.exceptions import PersistenceError, RecordValidationError


@pytest.fixture
def engine(catalog_store, log_sink):
    return ReconciliationEngine(catalog_store, log_sink)


class TestDeriveSku:
    """Tests for deterministic sku derivation."""

    def test_no_options_uses_code(self):
        assert derive_sku("SH-1") == "SH-1"
        assert derive_sku("SH-1", {}) == "SH-1"

    def test_key_order_does_not_matter(self):
        a = derive_sku("SH-1", {"color": "red", "size": "M"})
        b = derive_sku("SH-1", {"size": "M", "color": "red"})

        assert a == b
        assert a.startswith("SH-1-")
        assert option_key({"size": "M", "color": "red"}) == "color=red,size=M"

    def test_distinct_combinations_differ(self):
        skus = {
            derive_sku("SH-1", {"color": color, "size": size})
            for color in ("red", "blue", "green")
            for size in ("S", "M", "L", "XL")
        }

        assert len(skus) == 12

    def test_code_required(self):
        with pytest.raises(ValueError):
            derive_sku("", {"color": "red"})


class TestValidation:
    """Tests for record validation reason codes."""

    def test_valid(self, shirt):
        assert validate_external_product(shirt) == []

    def test_reason_codes(self):
        ep = ExternalProduct(external_id="", name=" ", price="cheap", inventory_quantity=1.5)

        assert validate_external_product(ep) == [
            "name-required",
            "sku-required",
            "price-must-be-number",
            "stock-must-be-integer",
        ]

    def test_negative_price(self):
        ep = ExternalProduct(external_id="E1", name="Shirt", price=-1, inventory_quantity=0)

        assert validate_external_product(ep) == ["price-must-be-non-negative"]

    def test_boolean_is_not_a_number(self):
        ep = ExternalProduct(external_id="E1", name="Shirt", price=True, inventory_quantity=False)

        assert "price-must-be-number" in validate_external_product(ep)
        assert "stock-must-be-integer" in validate_external_product(ep)

    def test_images_and_barcodes_must_be_string_lists(self):
        ep = ExternalProduct(external_id="E1", name="Shirt", price=1, inventory_quantity=1,
                             images="a.jpg", barcodes=[5])

        assert validate_external_product(ep) == ["images-invalid", "barcodes-invalid"]


class TestUpsert:
    """Tests for single-record upsert."""

    def test_shirt_synced_twice(self, engine, catalog_store, shirt):
        """Test one product, one stable variant and two movements of quantity 5."""
        first = engine.upsert(shirt)
        second = engine.upsert(shirt)

        products = catalog_store.list_products()
        variants = catalog_store.list_variants()
        movements = catalog_store.list_movements()

        assert len(products) == 1
        assert products[0].name == "Shirt"
        assert len(variants) == 1
        assert first.variant.sku == second.variant.sku
        assert [m.quantity for m in movements] == [5, 5]
        assert all(m.type == "import" for m in movements)
        assert movements[0].note == "Imported from external source E1"
        assert first.created_product and not second.created_product
        assert first.created_variant and not second.created_variant

    def test_update_preserves_identity(self, engine, catalog_store, shirt):
        first = engine.upsert(shirt)
        shirt.name = "Shirt v2"
        shirt.price = 12000
        shirt.inventory_quantity = 8

        second = engine.upsert(shirt)

        assert second.product.id == first.product.id
        assert second.product.created_at == first.product.created_at
        assert second.product.name == "Shirt v2"
        assert second.variant.id == first.variant.id
        assert catalog_store.find_variant_by_sku(first.variant.sku).price == 12000

    def test_movement_written_when_quantity_unchanged(self, engine, catalog_store):
        ep = ExternalProduct(external_id="E9", code="MUG", name="Mug", price=5000, inventory_quantity=3)

        for _ in range(3):
            engine.upsert(ep)

        assert len(catalog_store.list_movements()) == 3
        assert catalog_store.list_variants()[0].sku == "MUG"

    def test_falls_back_to_code_match(self, engine, catalog_store):
        """Test that an unlinked product with the same code is adopted."""
        catalog_store.create_product(InternalProduct(id="prd-manual", name="Mug", code="MUG"))
        ep = ExternalProduct(external_id="E9", code="MUG", name="Mug", price=5000, inventory_quantity=3)

        result = engine.upsert(ep)

        assert result.product.id == "prd-manual"
        assert result.product.external_product_id == "E9"
        assert len(catalog_store.list_products()) == 1

    def test_stock_rolls_up_over_variants(self, engine, catalog_store):
        base = dict(external_id="E2", code="TEE", name="Tee", price=9000)
        engine.upsert(ExternalProduct(inventory_quantity=3, option_map={"size": "M"}, **base))
        result = engine.upsert(ExternalProduct(inventory_quantity=4, option_map={"size": "L"}, **base))

        assert len(catalog_store.list_variants(result.product.id)) == 2
        assert catalog_store.get_product(result.product.id).stock == 7

    def test_accepts_dict(self, engine):
        result = engine.upsert({"externalId": "E3", "name": "Cap", "price": 100, "inventoryQuantity": 1})

        assert result.product.external_product_id == "E3"

    def test_invalid_record_raises(self, engine):
        with pytest.raises(RecordValidationError) as exc_info:
            engine.upsert(ExternalProduct(external_id="E4", name="", price=1, inventory_quantity=1))

        assert exc_info.value.reasons == ["name-required"]

    def test_sku_owned_by_other_product(self, engine, catalog_store):
        catalog_store.create_product(InternalProduct(id="p-other", name="Other", code="X"))
        engine.upsert(ExternalProduct(external_id="E5", code="X", name="Other", price=1, inventory_quantity=1))
        catalog_store.create_product(InternalProduct(id="p-new", name="New", code="X", external_product_id="E6"))

        with pytest.raises(PersistenceError, match="already belongs"):
            engine.upsert(ExternalProduct(external_id="E6", name="New", price=1, inventory_quantity=1))


class TestDryRun:
    """Tests for dry-run mode."""

    def test_fresh_store_is_not_mutated(self, engine, catalog_store, shirt):
        result = engine.upsert(shirt, dry_run=True)

        assert catalog_store.list_products() == []
        assert catalog_store.list_variants() == []
        assert catalog_store.list_movements() == []
        assert result.dry_run
        assert result.product.id.startswith("dry-prd-")
        assert result.product.name == "Shirt"
        assert result.variant.stock == 5
        assert result.movement.quantity == 5

    def test_placeholders_are_deterministic(self, engine, shirt):
        a = engine.upsert(shirt, dry_run=True)
        b = engine.upsert(shirt, dry_run=True)

        assert a.product.id == b.product.id
        assert a.variant.sku == b.variant.sku

    def test_dry_run_matches_existing_records(self, engine, catalog_store, shirt):
        real = engine.upsert(shirt)
        shirt.inventory_quantity = 9

        preview = engine.upsert(shirt, dry_run=True)

        assert preview.product.id == real.product.id
        assert preview.variant.id == real.variant.id
        assert not preview.created_variant
        assert catalog_store.find_variant_by_sku(real.variant.sku).stock == 5
        assert len(catalog_store.list_movements()) == 1


class TestUpsertBatch:
    """Tests for batch reconciliation."""

    def test_batch_isolation(self, engine, catalog_store):
        """Test that one malformed record does not stop the others."""
        records = [
            {"externalId": f"E{i}", "code": f"C{i}", "name": f"Item {i}", "price": 100 * i, "inventoryQuantity": i}
            for i in range(1, 5)
        ]
        records.insert(2, {"externalId": "BAD", "name": "", "price": "n/a", "inventoryQuantity": 1})

        report = engine.upsert_batch(records)

        assert report.total == 5
        assert report.valid == 4
        assert report.invalid == 1
        assert report.failed == 0
        assert len(catalog_store.list_products()) == 4
        assert report.errors[0].reference == "BAD"
        assert report.errors[0].reasons == ["name-required", "price-must-be-number"]
        assert len(report.to_dict()["written"]["variants"]) == 4

    def test_malformed_records_are_itemized(self, engine, catalog_store):
        """Test that unreadable records in the middle of a batch do not stop it."""
        records = [
            {"externalId": "E1", "name": "Shirt", "price": 100, "inventoryQuantity": 1},
            None,
            {"externalId": "E2", "name": "Cap", "price": 100, "inventoryQuantity": 1, "barcodes": 5},
            "not-a-record",
            {"externalId": "E3", "code": "MUG", "name": "Mug", "price": 100,
             "inventoryQuantity": 1, "barcodes": "8801"},
        ]

        report = engine.upsert_batch(records)

        assert report.total == 5
        assert report.valid == 2
        assert report.invalid == 3
        assert report.failed == 0
        assert {e.reference: e.reasons for e in report.errors} == {
            "#1": ["record-malformed"],
            "E2": ["barcodes-invalid"],
            "#3": ["record-malformed"],
        }
        assert sorted(p.external_product_id for p in catalog_store.list_products()) == ["E1", "E3"]
        assert catalog_store.find_variant_by_sku("MUG").barcode == "8801"

    def test_persistence_error_is_itemized(self, catalog_store, log_sink):
        class FlakyStore(InMemoryCatalogStore):
            def create_variant(self, variant):
                if variant.sku == "C2":
                    raise PersistenceError("disk full")
                return super().create_variant(variant)

        engine = ReconciliationEngine(FlakyStore(), log_sink)
        records = [
            ExternalProduct(external_id=f"E{i}", code=f"C{i}", name="Item", price=1, inventory_quantity=1)
            for i in range(1, 4)
        ]

        report = engine.upsert_batch(records)

        assert report.valid == 3
        assert report.failed == 1
        assert report.invalid == 0
        assert report.errors[0].reasons == ["persistence-error"]
        assert len(report.written_variants) == 2

    def test_dry_run_batch(self, engine, catalog_store, shirt):
        report = engine.upsert_batch([shirt], dry_run=True)

        assert report.dry_run
        assert report.written_products[0].startswith("dry-prd-")
        assert catalog_store.list_products() == []

    def test_summary_logged_to_sink(self, engine, log_sink, shirt):
        engine.upsert_batch([shirt], shop_id="s1")

        entry = log_sink.list(limit=1)[0]
        assert entry.adapter == "reconciliation"
        assert entry.shop_id == "s1"
        assert entry.metadata["valid"] == 1
