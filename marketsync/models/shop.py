"""Shop data model."""

import copy
from dataclasses import dataclass, field
from typing import Optional, Dict, Any


@dataclass
class Shop:
    """A connected storefront on an external platform.

    ``credentials`` is opaque to everything except the platform adapter
    and its token refresher (``access_token``, ``refresh_token``...).
    """

    id: str
    platform: str
    name: Optional[str] = None
    credentials: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Shop id cannot be empty")
        self.platform = (self.platform or "unknown").lower()
        if self.name is None:
            self.name = self.id

    @property
    def access_token(self) -> Optional[str]:
        return self.credentials.get("access_token")

    def copy(self) -> "Shop":
        return Shop(
            id=self.id,
            platform=self.platform,
            name=self.name,
            credentials=copy.deepcopy(self.credentials),
        )

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Convert to dictionary representation, hiding secrets by default."""
        credentials = {
            key: ("***" if redact and value else value)
            for key, value in self.credentials.items()
        }
        return {
            "id": self.id,
            "platform": self.platform,
            "name": self.name,
            "credentials": credentials,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Shop":
        """Create instance from dictionary."""
        return cls(
            id=str(data["id"]),
            platform=data.get("platform", "unknown"),
            name=data.get("name"),
            credentials=dict(data.get("credentials") or {}),
        )
