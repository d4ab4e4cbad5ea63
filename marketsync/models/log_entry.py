"""Integration log entry data model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @classmethod
    def parse(cls, value) -> "LogLevel":
        if isinstance(value, cls):
            return value
        normalized = str(value).lower()
        if normalized == "warning":
            normalized = "warn"
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown log level: {value!r}")


@dataclass(frozen=True)
class LogEntry:
    """One append-only record of adapter activity for a shop."""

    id: int
    shop_id: Optional[str]
    adapter: str
    level: LogLevel
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "adapter": self.adapter,
            "level": self.level.value,
            "message": self.message,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }
