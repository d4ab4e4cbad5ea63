"""Tests for the adapter registry."""

import pytest

from marketsync.adapters.cafe24 import Cafe24Adapter
from marketsync.adapters.registry import AdapterRegistry, build_default_registry
from marketsync.utils.exceptions import AdapterConflictError, UnsupportedPlatformError


async def fetch_a(shop_id, params=None):
    return []


async def fetch_b(shop_id, params=None):
    return []


class TestAdapterRegistry:
    """Tests for AdapterRegistry."""

    def test_resolve_unknown_returns_none(self):
        registry = AdapterRegistry()

        assert registry.resolve("shopify") is None
        assert registry.resolve("") is None
        assert "shopify" not in registry

    def test_lookup_is_case_insensitive(self):
        registry = AdapterRegistry()
        registry.register("Cafe24", fetch_a)

        assert registry.resolve("CAFE24") is fetch_a
        assert registry.platforms() == ["cafe24"]

    def test_same_function_twice_is_noop(self):
        registry = AdapterRegistry()
        registry.register("cafe24", fetch_a)
        registry.register("cafe24", fetch_a)

        assert len(registry) == 1

    def test_different_function_conflicts(self):
        """Test that a taken name is never silently overwritten."""
        registry = AdapterRegistry()
        registry.register("cafe24", fetch_a)

        with pytest.raises(AdapterConflictError):
            registry.register("cafe24", fetch_b)
        assert registry.resolve("cafe24") is fetch_a

    def test_explicit_replace_wins(self):
        registry = AdapterRegistry()
        registry.register("cafe24", fetch_a)
        registry.register("cafe24", fetch_b, replace=True)

        assert registry.resolve("cafe24") is fetch_b

    def test_require_unsupported(self):
        registry = AdapterRegistry()
        registry.register("cafe24", fetch_a)

        with pytest.raises(UnsupportedPlatformError) as exc_info:
            registry.require("shopify")
        assert exc_info.value.details["supported"] == ["cafe24"]

    def test_empty_platform_name(self):
        with pytest.raises(ValueError):
            AdapterRegistry().register("  ", fetch_a)

    def test_unregister_and_clear(self):
        registry = AdapterRegistry()
        registry.register("cafe24", fetch_a)
        registry.register("other", fetch_b)

        assert registry.unregister("cafe24") is fetch_a
        registry.clear()
        assert len(registry) == 0

    def test_default_registry(self, shop_store, log_sink, app_config):
        """Test the static adapter list wired at startup."""
        registry = build_default_registry(shop_store, log_sink, config=app_config)

        assert registry.platforms() == ["cafe24"]
        assert isinstance(registry.resolve("cafe24"), Cafe24Adapter)

    @pytest.mark.asyncio
    async def test_close_skips_plain_functions(self, shop_store, log_sink, app_config):
        registry = build_default_registry(shop_store, log_sink, config=app_config)
        registry.register("plain", fetch_a)

        await registry.close()
