"""Reconciliation and synchronization result data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional

from .product import InternalProduct, InternalVariant, InventoryMovement


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ItemError:
    """Represents a per-record reconciliation failure."""

    reference: str
    error_type: str
    message: str
    reasons: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.reference,
            "error_type": self.error_type,
            "message": self.message,
            "errors": self.reasons,
            "timestamp": self.timestamp.isoformat()
        }


@dataclass
class UpsertResult:
    """Outcome of reconciling one external product.

    In dry-run mode the records are simulated and never stored.
    """

    product: InternalProduct
    variant: InternalVariant
    movement: InventoryMovement
    created_product: bool = False
    created_variant: bool = False
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product.to_dict(),
            "variant": self.variant.to_dict(),
            "movement": self.movement.to_dict(),
            "created_product": self.created_product,
            "created_variant": self.created_variant,
            "dry_run": self.dry_run,
        }


@dataclass
class ImportReport:
    """Per-batch reconciliation report.

    ``valid``/``invalid`` count validation outcomes; ``failed`` counts valid
    records whose store write failed.
    """

    total: int = 0
    valid: int = 0
    invalid: int = 0
    failed: int = 0
    dry_run: bool = False
    errors: List[ItemError] = field(default_factory=list)
    written_products: List[str] = field(default_factory=list)
    written_variants: List[str] = field(default_factory=list)
    results: List[UpsertResult] = field(default_factory=list)

    def add_invalid(self, reference: str, reasons: List[str]):
        """Record a record rejected by validation."""
        self.invalid += 1
        self.errors.append(ItemError(
            reference=reference,
            error_type="ValidationError",
            message=", ".join(reasons),
            reasons=list(reasons)
        ))

    def add_failure(self, reference: str, error_type: str, message: str):
        """Record a valid record that could not be written."""
        self.failed += 1
        self.errors.append(ItemError(
            reference=reference,
            error_type=error_type,
            message=message,
            reasons=["persistence-error"]
        ))

    def add_result(self, result: UpsertResult):
        self.results.append(result)
        if result.product.id not in self.written_products:
            self.written_products.append(result.product.id)
        self.written_variants.append(result.variant.id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "total": self.total,
            "valid": self.valid,
            "invalid": self.invalid,
            "failed": self.failed,
            "dry_run": self.dry_run,
            "errors": [error.to_dict() for error in self.errors],
            "written": {
                "products": list(self.written_products),
                "variants": list(self.written_variants),
            },
        }

    def get_summary(self) -> str:
        """Get a human-readable summary."""
        summary_lines = [
            f"Total records: {self.total}",
            f"Valid: {self.valid}",
            f"Invalid: {self.invalid}",
            f"Failed writes: {self.failed}",
            f"Products written: {len(self.written_products)}",
            f"Variants written: {len(self.written_variants)}",
        ]

        if self.errors:
            summary_lines.append(f"\nErrors ({len(self.errors)}):")
            for error in self.errors[:5]:  # Show first 5 errors
                summary_lines.append(f"  - {error.reference}: {error.message}")
            if len(self.errors) > 5:
                summary_lines.append(f"  ... and {len(self.errors) - 5} more errors")

        return "\n".join(summary_lines)


@dataclass
class SyncResult:
    """Represents the result of syncing one shop's catalog."""

    shop_id: str
    success: bool = True
    platform: Optional[str] = None
    fetched_count: int = 0
    report: ImportReport = field(default_factory=ImportReport)
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration: float = 0.0  # seconds
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def __post_init__(self):
        """Initialize timestamps if not set."""
        if self.start_time is None:
            self.start_time = _utcnow()

    def fail(self, exc: Exception):
        """Mark the whole sync as failed with its cause."""
        self.success = False
        self.error = getattr(exc, "message", None) or str(exc)
        self.error_type = type(exc).__name__

    def finalize(self):
        """Finalize the sync result with end time and duration."""
        self.end_time = _utcnow()
        if self.start_time:
            self.duration = (self.end_time - self.start_time).total_seconds()
        if self.report.errors:
            self.success = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "shop_id": self.shop_id,
            "platform": self.platform,
            "success": self.success,
            "fetched_count": self.fetched_count,
            "error": self.error,
            "error_type": self.error_type,
            "duration": round(self.duration, 2),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "report": self.report.to_dict(),
        }

    def get_summary(self) -> str:
        """Get a human-readable summary."""
        lines = [
            f"Shop {self.shop_id} ({self.platform or 'unknown'}) synced in {self.duration:.2f}s",
            f"Fetched: {self.fetched_count}",
        ]
        if self.error:
            lines.append(f"Error: {self.error}")
        lines.append(self.report.get_summary())
        return "\n".join(lines)
