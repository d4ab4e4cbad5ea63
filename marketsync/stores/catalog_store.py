"""Persistent product/variant/inventory store contract and in-memory implementation."""

import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional

from ..models.product import InternalProduct, InternalVariant, InventoryMovement
from ..utils.exceptions import PersistenceError


class CatalogStore(ABC):
    """What the reconciliation engine needs from the product database."""

    @abstractmethod
    def next_id(self, kind: str) -> str:
        """Allocate an id for a new ``product``, ``variant`` or ``movement``."""

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[InternalProduct]:
        ...

    @abstractmethod
    def find_product_by_external_id(self, external_id: str) -> Optional[InternalProduct]:
        ...

    @abstractmethod
    def find_product_by_code(self, code: str) -> Optional[InternalProduct]:
        ...

    @abstractmethod
    def create_product(self, product: InternalProduct) -> InternalProduct:
        ...

    @abstractmethod
    def update_product(self, product: InternalProduct) -> InternalProduct:
        ...

    @abstractmethod
    def find_variant_by_sku(self, sku: str) -> Optional[InternalVariant]:
        ...

    @abstractmethod
    def create_variant(self, variant: InternalVariant) -> InternalVariant:
        ...

    @abstractmethod
    def update_variant(self, variant: InternalVariant) -> InternalVariant:
        ...

    @abstractmethod
    def add_movement(self, movement: InventoryMovement) -> InventoryMovement:
        """Append to the inventory ledger. Entries are never changed afterwards."""

    @abstractmethod
    def list_products(self) -> List[InternalProduct]:
        ...

    @abstractmethod
    def list_variants(self, product_id: Optional[str] = None) -> List[InternalVariant]:
        ...

    @abstractmethod
    def list_movements(self, variant_id: Optional[str] = None) -> List[InventoryMovement]:
        ...


_ID_PREFIXES = {"product": "prd", "variant": "var", "movement": "mov"}


class InMemoryCatalogStore(CatalogStore):
    """Dict-backed store enforcing sku and external product id uniqueness."""

    def __init__(self):
        self._products: Dict[str, InternalProduct] = {}
        self._variants: Dict[str, InternalVariant] = {}
        self._movements: List[InventoryMovement] = []
        self._counter = itertools.count(1)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Ids
    # ------------------------------------------------------------------

    def next_id(self, kind: str) -> str:
        prefix = _ID_PREFIXES.get(kind)
        if prefix is None:
            raise ValueError(f"Unknown record kind: {kind}")
        with self._lock:
            return f"{prefix}-{next(self._counter):06d}"

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def get_product(self, product_id: str) -> Optional[InternalProduct]:
        with self._lock:
            product = self._products.get(product_id)
            return replace(product) if product else None

    def find_product_by_external_id(self, external_id: str) -> Optional[InternalProduct]:
        if not external_id:
            return None
        with self._lock:
            for product in self._products.values():
                if product.external_product_id == external_id:
                    return replace(product)
        return None

    def find_product_by_code(self, code: str) -> Optional[InternalProduct]:
        if not code:
            return None
        with self._lock:
            for product in self._products.values():
                if product.code == code:
                    return replace(product)
        return None

    def _check_external_id(self, product: InternalProduct):
        if not product.external_product_id:
            return
        for other in self._products.values():
            if other.id != product.id and other.external_product_id == product.external_product_id:
                raise PersistenceError(
                    f"External product {product.external_product_id} already linked to {other.id}",
                    details={"product_id": product.id, "linked_to": other.id}
                )

    def create_product(self, product: InternalProduct) -> InternalProduct:
        with self._lock:
            if product.id in self._products:
                raise PersistenceError(f"Product already exists: {product.id}")
            self._check_external_id(product)
            self._products[product.id] = replace(product)
            return replace(product)

    def update_product(self, product: InternalProduct) -> InternalProduct:
        with self._lock:
            if product.id not in self._products:
                raise PersistenceError(f"Product not found: {product.id}")
            self._check_external_id(product)
            self._products[product.id] = replace(product)
            return replace(product)

    def list_products(self) -> List[InternalProduct]:
        with self._lock:
            return [replace(p) for p in self._products.values()]

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def find_variant_by_sku(self, sku: str) -> Optional[InternalVariant]:
        with self._lock:
            variant = self._variants.get(sku)
            return replace(variant) if variant else None

    def create_variant(self, variant: InternalVariant) -> InternalVariant:
        with self._lock:
            if variant.sku in self._variants:
                raise PersistenceError(
                    f"Duplicate sku: {variant.sku}",
                    details={"sku": variant.sku}
                )
            if variant.product_id not in self._products:
                raise PersistenceError(f"Product not found: {variant.product_id}")
            self._variants[variant.sku] = replace(variant)
            return replace(variant)

    def update_variant(self, variant: InternalVariant) -> InternalVariant:
        with self._lock:
            existing = self._variants.get(variant.sku)
            if existing is None or existing.id != variant.id:
                raise PersistenceError(
                    f"Variant not found for sku: {variant.sku}",
                    details={"sku": variant.sku, "variant_id": variant.id}
                )
            self._variants[variant.sku] = replace(variant)
            return replace(variant)

    def list_variants(self, product_id: Optional[str] = None) -> List[InternalVariant]:
        with self._lock:
            return [
                replace(v) for v in self._variants.values()
                if product_id is None or v.product_id == product_id
            ]

    # ------------------------------------------------------------------
    # Inventory ledger
    # ------------------------------------------------------------------

    def add_movement(self, movement: InventoryMovement) -> InventoryMovement:
        with self._lock:
            self._movements.append(movement)
            return movement

    def list_movements(self, variant_id: Optional[str] = None) -> List[InventoryMovement]:
        with self._lock:
            return [
                m for m in self._movements
                if variant_id is None or m.variant_id == variant_id
            ]
