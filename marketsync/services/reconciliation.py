"""Merge external products into the internal catalog.

Per record:
  1. Match the product by external id, then by platform code; create or
     update it in place.
  2. Derive the variant sku from the product code and the option map and
     upsert the variant by sku.
  3. Append one inventory movement for the variant, even when the quantity
     did not change.

Dry-run executes the same matching and derivation against the store but
writes nothing; placeholder ids stand in for ids the store would assign.
"""

import hashlib
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Union

from ..models.product import (
    ExternalProduct,
    InternalProduct,
    InternalVariant,
    InventoryMovement,
    utcnow,
)
from ..models.sync_result import ImportReport, UpsertResult
from ..stores.catalog_store import CatalogStore
from ..stores.log_sink import LogSink
from ..utils.exceptions import PersistenceError, RecordValidationError
from ..utils.logger import get_sync_logger

OPTION_SEPARATOR = ","
SKU_HASH_LENGTH = 10
MOVEMENT_TYPE = "import"


def option_key(option_map: Dict[str, Any]) -> str:
    """Canonical ``key=value`` form of an option map, sorted by key."""
    return OPTION_SEPARATOR.join(
        f"{key}={option_map[key]}" for key in sorted(option_map, key=str)
    )


def derive_sku(code: str, option_map: Optional[Dict[str, Any]] = None) -> str:
    """
    Deterministic variant sku.

    Without options the sku is the product code. With options it is the
    code plus a short SHA-256 digest of the sorted option pairs, so the same
    combination always yields the same sku whatever the key order.
    """
    if not code:
        raise ValueError("A product code is required to derive a sku")
    if not option_map:
        return code
    digest = hashlib.sha256(option_key(option_map).encode("utf-8")).hexdigest()[:SKU_HASH_LENGTH]
    return f"{code}-{digest}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def validate_external_product(ep: ExternalProduct) -> List[str]:
    """Return reason codes; an empty list means the record is importable."""
    reasons = []
    if not isinstance(ep.name, str) or not ep.name.strip():
        reasons.append("name-required")
    if not (ep.code or ep.external_id):
        reasons.append("sku-required")
    if not _is_number(ep.price):
        reasons.append("price-must-be-number")
    elif ep.price < 0:
        reasons.append("price-must-be-non-negative")
    quantity = ep.inventory_quantity
    if not _is_number(quantity) or (isinstance(quantity, float) and not quantity.is_integer()):
        reasons.append("stock-must-be-integer")
    if ep.option_map is not None:
        if not isinstance(ep.option_map, dict) or any(not str(k).strip() for k in ep.option_map):
            reasons.append("option-map-invalid")
    if not _is_string_list(ep.images):
        reasons.append("images-invalid")
    if not _is_string_list(ep.barcodes):
        reasons.append("barcodes-invalid")
    return reasons


def _placeholder(kind: str, seed: str) -> str:
    return f"dry-{kind}-{hashlib.sha256(seed.encode('utf-8')).hexdigest()[:8]}"


class ReconciliationEngine:
    """Idempotent create-or-update of external products."""

    def __init__(self, store: CatalogStore, log_sink: Optional[LogSink] = None):
        self.store = store
        self.log_sink = log_sink
        self.logger = get_sync_logger()

    # ------------------------------------------------------------------
    # Single record
    # ------------------------------------------------------------------

    def upsert(self, ep: Union[ExternalProduct, Dict[str, Any]], dry_run: bool = False) -> UpsertResult:
        """
        Reconcile one external product.

        Raises:
            RecordValidationError: If required fields are missing or malformed.
            PersistenceError: If the store rejects a write.
        """
        if isinstance(ep, dict):
            ep = ExternalProduct.from_dict(ep)

        reasons = validate_external_product(ep)
        if reasons:
            raise RecordValidationError(
                f"Invalid external product {ep.external_id or ep.name!r}: {', '.join(reasons)}",
                reasons=reasons,
            )

        external_id = ep.external_id or ep.code
        quantity = int(ep.inventory_quantity)

        product, created_product = self._upsert_product(ep, external_id, quantity, dry_run)
        variant, created_variant = self._upsert_variant(ep, product, quantity, dry_run)

        movement = InventoryMovement(
            id=_placeholder("mov", variant.sku) if dry_run else self.store.next_id("movement"),
            product_id=product.id,
            variant_id=variant.id,
            quantity=quantity,
            type=MOVEMENT_TYPE,
            note=f"Imported from external source {external_id}",
        )
        if not dry_run:
            self.store.add_movement(movement)

        product = self._roll_up_stock(product, variant, dry_run)

        self.logger.debug(
            f"{'[dry-run] ' if dry_run else ''}{external_id}: product {product.id} "
            f"({'created' if created_product else 'updated'}), variant {variant.sku} "
            f"({'created' if created_variant else 'updated'}), qty {quantity}"
        )

        return UpsertResult(
            product=product,
            variant=variant,
            movement=movement,
            created_product=created_product,
            created_variant=created_variant,
            dry_run=dry_run,
        )

    def _product_fields(self, ep: ExternalProduct, quantity: int) -> Dict[str, Any]:
        return {
            "name": ep.name.strip(),
            "price": ep.price,
            "stock": quantity,
            "is_selling": ep.is_selling,
            "description": ep.description,
            "media": list(ep.images),
            "category": ep.category,
            "brand": ep.brand,
            "width": ep.width,
            "height": ep.height,
            "depth": ep.depth,
            "weight": ep.weight,
            "hs_code": ep.hs_code,
            "origin": ep.origin,
        }

    def _upsert_product(self, ep: ExternalProduct, external_id: str, quantity: int, dry_run: bool):
        product = self.store.find_product_by_external_id(external_id)
        if product is None and ep.code:
            product = self.store.find_product_by_code(ep.code)

        fields = self._product_fields(ep, quantity)

        if product is None:
            product = InternalProduct(
                id=_placeholder("prd", external_id) if dry_run else self.store.next_id("product"),
                code=ep.code,
                external_product_id=external_id,
                **fields,
            )
            if not dry_run:
                product = self.store.create_product(product)
            return product, True

        product = replace(
            product,
            code=product.code or ep.code,
            external_product_id=external_id or product.external_product_id,
            updated_at=utcnow(),
            **fields,
        )
        if not dry_run:
            product = self.store.update_product(product)
        return product, False

    def _upsert_variant(self, ep: ExternalProduct, product: InternalProduct, quantity: int, dry_run: bool):
        sku = derive_sku(product.code or product.id, ep.option_map)
        barcode = ep.barcodes[0] if ep.barcodes else None
        option_values = {str(k): str(v) for k, v in (ep.option_map or {}).items()}

        variant = self.store.find_variant_by_sku(sku)
        if variant is not None and variant.product_id != product.id:
            raise PersistenceError(
                f"Sku {sku} already belongs to product {variant.product_id}",
                details={"sku": sku, "product_id": product.id}
            )

        if variant is None:
            variant = InternalVariant(
                id=_placeholder("var", sku) if dry_run else self.store.next_id("variant"),
                product_id=product.id,
                sku=sku,
                price=ep.price,
                stock=quantity,
                option_values=option_values,
                barcode=barcode,
            )
            if not dry_run:
                variant = self.store.create_variant(variant)
            return variant, True

        variant = replace(
            variant,
            price=ep.price,
            stock=quantity,
            option_values=option_values,
            barcode=barcode or variant.barcode,
            updated_at=utcnow(),
        )
        if not dry_run:
            variant = self.store.update_variant(variant)
        return variant, False

    def _roll_up_stock(self, product: InternalProduct, variant: InternalVariant, dry_run: bool) -> InternalProduct:
        """Product stock is the sum over its variants."""
        others = [v for v in self.store.list_variants(product.id) if v.sku != variant.sku]
        total = variant.stock + sum(v.stock for v in others)
        if total == product.stock:
            return product
        product = replace(product, stock=total)
        if not dry_run:
            product = self.store.update_product(product)
        return product

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def upsert_batch(
        self,
        records: Iterable[Union[ExternalProduct, Dict[str, Any]]],
        dry_run: bool = False,
        shop_id: Optional[str] = None,
    ) -> ImportReport:
        """
        Reconcile many records independently.

        One bad record never stops the others: validation and write
        failures are itemized in the returned report instead of raised.
        """
        report = ImportReport(dry_run=dry_run)

        for index, record in enumerate(records):
            report.total += 1
            ep = self._coerce(record)
            if ep is None:
                report.add_invalid(f"#{index}", ["record-malformed"])
                self.logger.warning(f"Skipping malformed record #{index}: {type(record).__name__}")
                continue
            reference = str(ep.external_id or ep.code or f"#{index}")

            reasons = validate_external_product(ep)
            if reasons:
                report.add_invalid(reference, reasons)
                self.logger.warning(f"Skipping invalid product {reference}: {', '.join(reasons)}")
                continue

            report.valid += 1
            try:
                report.add_result(self.upsert(ep, dry_run=dry_run))
            except Exception as e:
                report.add_failure(reference, type(e).__name__, getattr(e, "message", None) or str(e))
                self.logger.error(f"Failed to reconcile {reference}: {str(e)}", exc_info=not isinstance(e, PersistenceError))

        self._log_summary(report, shop_id)
        return report

    def _coerce(self, record: Any) -> Optional[ExternalProduct]:
        """Return an ExternalProduct, or None when the record cannot be read at all."""
        if isinstance(record, ExternalProduct):
            return record
        if not isinstance(record, dict):
            return None
        try:
            return ExternalProduct.from_dict(record)
        except (TypeError, ValueError):
            return None

    def _log_summary(self, report: ImportReport, shop_id: Optional[str]):
        prefix = "[dry-run] " if report.dry_run else ""
        message = (
            f"{prefix}reconciled {report.total} records: {report.valid} valid, "
            f"{report.invalid} invalid, {report.failed} failed"
        )
        self.logger.info(message)
        if self.log_sink is not None:
            level = "warn" if report.errors else "info"
            self.log_sink.log(shop_id, "reconciliation", level, message, {
                "total": report.total,
                "valid": report.valid,
                "invalid": report.invalid,
                "failed": report.failed,
                "dry_run": report.dry_run,
                "products": len(report.written_products),
                "variants": len(report.written_variants),
            })
