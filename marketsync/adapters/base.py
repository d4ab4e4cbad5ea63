"""Platform adapter contract."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models.product import ExternalProduct


class PlatformAdapter(ABC):
    """
    Fetches one platform's product catalog and normalizes it.

    An adapter instance is itself the registry's fetch function:
    ``await adapter(shop_id, params)`` returns ``ExternalProduct`` records.
    """

    name: str = ""

    @abstractmethod
    async def fetch_products(self, shop_id: str, params: Optional[Dict[str, Any]] = None) -> List[ExternalProduct]:
        """Return the shop's full catalog in platform-neutral form."""

    @abstractmethod
    def normalize(self, raw: Dict[str, Any]) -> List[ExternalProduct]:
        """Turn one raw platform product into one record per variant."""

    async def __call__(self, shop_id: str, params: Optional[Dict[str, Any]] = None) -> List[ExternalProduct]:
        return await self.fetch_products(shop_id, params)

    async def close(self):
        """Release network resources held by the adapter."""
