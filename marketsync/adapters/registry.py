"""Adapter registry: platform name -> fetch function.

One registry is built at process start and handed to whoever needs
lookups. Adapters are registered from a static list; an unknown platform
resolves to ``None`` instead of being loaded dynamically.
"""

import asyncio
import inspect
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .cafe24 import create_cafe24_adapter
from ..models.product import ExternalProduct
from ..stores.log_sink import LogSink
from ..stores.shop_store import ShopStore
from ..utils.config import AppConfig
from ..utils.exceptions import AdapterConflictError, UnsupportedPlatformError

FetchFn = Callable[..., Awaitable[List[ExternalProduct]]]

# platform name -> adapter factory
STATIC_ADAPTERS: Dict[str, Callable[..., FetchFn]] = {
    "cafe24": create_cafe24_adapter,
}


def _key(platform: str) -> str:
    if not platform or not platform.strip():
        raise ValueError("Platform name cannot be empty")
    return platform.strip().lower()


class AdapterRegistry:
    """Maps platform names (case-insensitive) to fetch functions."""

    def __init__(self):
        self._adapters: Dict[str, FetchFn] = {}
        self._lock = threading.Lock()

    def register(self, platform: str, fetch_fn: FetchFn, replace: bool = False) -> None:
        """
        Register ``fetch_fn`` for ``platform``.

        Registering the same function twice is a no-op. A different function
        under a taken name needs ``replace=True``; the last such call wins.

        Raises:
            AdapterConflictError: If the name is taken and ``replace`` is False.
        """
        key = _key(platform)
        with self._lock:
            existing = self._adapters.get(key)
            if existing is not None and existing is not fetch_fn and not replace:
                raise AdapterConflictError(
                    f"An adapter is already registered for platform '{key}'",
                    details={"platform": key}
                )
            self._adapters[key] = fetch_fn

    def resolve(self, platform: str) -> Optional[FetchFn]:
        """Return the fetch function, or None for an unregistered platform."""
        if not platform:
            return None
        with self._lock:
            return self._adapters.get(platform.strip().lower())

    def require(self, platform: str) -> FetchFn:
        """
        Like ``resolve`` but raises for unsupported platforms.

        Raises:
            UnsupportedPlatformError: If nothing is registered for ``platform``.
        """
        fetch_fn = self.resolve(platform)
        if fetch_fn is None:
            raise UnsupportedPlatformError(
                f"Unsupported platform: {platform}",
                details={"platform": platform, "supported": self.platforms()}
            )
        return fetch_fn

    def unregister(self, platform: str) -> Optional[FetchFn]:
        with self._lock:
            return self._adapters.pop(_key(platform), None)

    def clear(self) -> None:
        with self._lock:
            self._adapters.clear()

    def platforms(self) -> List[str]:
        with self._lock:
            return sorted(self._adapters)

    async def close(self) -> None:
        """Close every registered adapter that holds network resources."""
        with self._lock:
            adapters = list(self._adapters.values())
        closers = [fn.close() for fn in adapters if inspect.iscoroutinefunction(getattr(fn, "close", None))]
        await asyncio.gather(*closers)

    def __contains__(self, platform: str) -> bool:
        return self.resolve(platform) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._adapters)


def build_default_registry(
    shop_store: ShopStore,
    log_sink: LogSink,
    config: Optional[AppConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **adapter_kwargs: Any,
) -> AdapterRegistry:
    """Create a registry holding every adapter in ``STATIC_ADAPTERS``."""
    registry = AdapterRegistry()
    for platform, factory in STATIC_ADAPTERS.items():
        registry.register(platform, factory(shop_store, log_sink, config=config, transport=transport, **adapter_kwargs))
    return registry
