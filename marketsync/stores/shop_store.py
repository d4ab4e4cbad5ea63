"""Shop and credential store.

The fetch protocol re-reads credentials from here on every retry, so a
token written by a refresh (from this process or a background job) is
picked up without any caching in between.
"""

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

import yaml

from ..models.shop import Shop
from ..utils.exceptions import ConfigurationError, ShopNotFoundError


class ShopStore(ABC):
    """Lookup and credential update contract for connected shops."""

    @abstractmethod
    def get_shop(self, shop_id: str) -> Optional[Shop]:
        """Return the shop, or None when it is unknown."""

    @abstractmethod
    def set_shop_credentials(self, shop_id: str, patch: Dict[str, Any]) -> Shop:
        """Merge ``patch`` into the shop's credentials and return the shop."""

    @abstractmethod
    def add_shop(self, shop: Shop) -> Shop:
        """Insert or replace a shop."""

    @abstractmethod
    def list_shops(self) -> List[Shop]:
        """Return all shops."""


class InMemoryShopStore(ShopStore):
    """Thread-safe in-memory shop store.

    Shops are copied on the way in and out so callers never share mutable
    credential dicts.
    """

    def __init__(self, shops: Optional[List[Shop]] = None):
        self._shops: Dict[str, Shop] = {}
        self._lock = threading.RLock()
        for shop in shops or []:
            self.add_shop(shop)

    def get_shop(self, shop_id: str) -> Optional[Shop]:
        with self._lock:
            shop = self._shops.get(shop_id)
            return shop.copy() if shop else None

    def set_shop_credentials(self, shop_id: str, patch: Dict[str, Any]) -> Shop:
        with self._lock:
            shop = self._shops.get(shop_id)
            if shop is None:
                raise ShopNotFoundError(f"Shop not found: {shop_id}", details={"shop_id": shop_id})
            shop.credentials.update(patch)
            return shop.copy()

    def add_shop(self, shop: Shop) -> Shop:
        with self._lock:
            self._shops[shop.id] = shop.copy()
            return shop.copy()

    def list_shops(self) -> List[Shop]:
        with self._lock:
            return [shop.copy() for shop in self._shops.values()]


def load_shops(path: Union[str, Path]) -> List[Shop]:
    """
    Load shop definitions from a YAML file.

    Expected layout::

        shops:
          - id: shop_cafe24_1
            platform: cafe24
            name: fulgo-shop
            credentials:
              mall_id: fulgo
              access_token: ...

    Returns an empty list when the file does not exist.

    Raises:
        ConfigurationError: If the file cannot be parsed.
    """
    path = Path(path)
    if not path.exists():
        return []

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return [Shop.from_dict(entry) for entry in data.get("shops", [])]
    except (yaml.YAMLError, KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid shops file {path}: {str(e)}", details={"path": str(path)})
