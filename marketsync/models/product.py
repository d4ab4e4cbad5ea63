"""Product, variant and inventory ledger data models."""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return value or None


def _first(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present in ``data`` (platform payloads disagree on names)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_list(value: Any) -> Any:
    """A lone string becomes a one-item list; other non-lists are left for validation."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return list(value)
    return value


@dataclass
class ExternalProduct:
    """Platform-neutral product record produced by an adapter.

    An empty or missing ``option_map`` means the product has a single
    implicit variant.
    """

    external_id: str
    name: str
    price: Any
    inventory_quantity: Any
    is_selling: bool = True
    code: Optional[str] = None
    option_map: Optional[Dict[str, str]] = None
    barcodes: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    category: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    last_updated: Optional[str] = None

    # Logistics attributes
    width: Optional[float] = None
    height: Optional[float] = None
    depth: Optional[float] = None
    weight: Optional[float] = None
    hs_code: Optional[str] = None
    origin: Optional[str] = None

    @property
    def has_options(self) -> bool:
        return bool(self.option_map)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExternalProduct":
        """Create instance from a dictionary.

        Accepts the snake_case field names as well as the camelCase and
        legacy importer names (``product_no``, ``inventory``, ``options``...).
        """
        images = _first(data, "images", default=None)
        if images is None:
            image = _first(data, "image")
            images = [image] if image else []

        external_id = _first(data, "external_id", "externalId", "product_no", "id", default="")

        return cls(
            external_id=str(external_id),
            name=_first(data, "name", "product_name", default=""),
            price=_first(data, "price", default=0),
            inventory_quantity=_first(data, "inventory_quantity", "inventoryQuantity", "inventory", "stock", default=0),
            is_selling=bool(_first(data, "is_selling", "isSelling", "selling", default=True)),
            code=_first(data, "code", "product_code", "product_no"),
            option_map=_first(data, "option_map", "optionMap", "options"),
            barcodes=_as_list(_first(data, "barcodes", "barcode")),
            images=_as_list(images),
            category=_first(data, "category"),
            brand=_first(data, "brand"),
            description=_first(data, "description"),
            url=_first(data, "url"),
            last_updated=_first(data, "last_updated", "lastUpdated", "last_update"),
            width=_first(data, "width"),
            height=_first(data, "height"),
            depth=_first(data, "depth"),
            weight=_first(data, "weight"),
            hs_code=_first(data, "hs_code", "hsCode"),
            origin=_first(data, "origin"),
        )


@dataclass
class InternalProduct:
    """Durable product record. ``external_product_id`` links it back to the platform."""

    id: str
    name: str
    code: Optional[str] = None
    external_product_id: Optional[str] = None
    price: Any = 0
    stock: int = 0
    is_selling: bool = True
    description: Optional[str] = None
    media: List[str] = field(default_factory=list)
    category: Optional[str] = None
    brand: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None
    depth: Optional[float] = None
    weight: Optional[float] = None
    hs_code: Optional[str] = None
    origin: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data = asdict(self)
        data["created_at"] = _isoformat(self.created_at)
        data["updated_at"] = _isoformat(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InternalProduct":
        """Create instance from dictionary."""
        values = dict(data)
        for key in ("created_at", "updated_at"):
            parsed = _parse_datetime(values.get(key))
            if parsed is None:
                values.pop(key, None)
            else:
                values[key] = parsed
        return cls(**values)


@dataclass
class InternalVariant:
    """A sellable variant. ``sku`` is its reconciliation key."""

    id: str
    product_id: str
    sku: str
    price: Any = 0
    stock: int = 0
    option_values: Dict[str, str] = field(default_factory=dict)
    barcode: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not self.sku:
            raise ValueError("SKU cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data = asdict(self)
        data["created_at"] = _isoformat(self.created_at)
        data["updated_at"] = _isoformat(self.updated_at)
        return data


@dataclass(frozen=True)
class InventoryMovement:
    """Immutable ledger entry recording a reported stock quantity."""

    id: str
    product_id: str
    variant_id: str
    quantity: int
    note: str
    type: str = "import"
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "type": self.type,
            "note": self.note,
            "created_at": _isoformat(self.created_at),
        }
