"""
Adapter registry for runtime LLM provider selection.

Adapters are registered by instance or by lazy factory, looked up by name,
and one of them is the default.

Example:
    from coding_agent_engine.adapters.registry import AdapterRegistry

    registry = AdapterRegistry.with_builtin_providers()

    adapter = registry.get("anthropic", ProviderConfig.from_env("anthropic"))
    registry.set_default("anthropic")
"""

from __future__ import annotations

from collections.abc import Callable
from functools import partial
from typing import TYPE_CHECKING, Any

import httpx

from coding_agent_engine.logging import get_logger

if TYPE_CHECKING:
    from coding_agent_engine.adapters.base import LLMAdapter
    from coding_agent_engine.config import ProviderConfig

logger = get_logger("adapters.registry")

# Type for adapter factory functions: (config) -> LLMAdapter
AdapterFactory = Callable[["ProviderConfig"], "LLMAdapter"]


class _AdapterEntry:
    """Internal entry holding either an adapter instance or a factory."""

    __slots__ = ("name", "instance", "factory", "source")

    def __init__(
        self,
        name: str,
        instance: LLMAdapter | None = None,
        factory: AdapterFactory | None = None,
        source: str = "",
    ) -> None:
        self.name = name
        self.instance = instance
        self.factory = factory
        self.source = source


class AdapterRegistry:
    """
    A registry of LLM adapters.

    Thread Safety:
        Meant for single-threaded async usage. Registration and lookup are
        not protected by locks.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _AdapterEntry] = {}
        self._default_name: str | None = None

    @classmethod
    def with_builtin_providers(cls, client: httpx.AsyncClient | None = None) -> AdapterRegistry:
        """
        A registry with factories for the bundled ``openai`` and ``anthropic``
        adapters. Adapters it creates share ``client`` when one is given.
        """
        registry = cls()
        registry.register_factory("openai", partial(_openai_factory, client=client), source="builtin")
        registry.register_factory(
            "anthropic", partial(_anthropic_factory, client=client), source="builtin"
        )
        return registry

    def _add(self, entry: _AdapterEntry) -> None:
        if not entry.name:
            raise ValueError("Adapter name must not be empty")
        if entry.name in self._entries:
            logger.debug("Overriding adapter: %s", entry.name)
        self._entries[entry.name] = entry
        logger.debug("Registered adapter: %s (source=%s)", entry.name, entry.source or "manual")
        if self._default_name is None:
            self._default_name = entry.name

    def register(self, name: str, adapter: LLMAdapter, source: str = "") -> None:
        """
        Register an adapter instance.

        Raises:
            ValueError: If name is empty
        """
        self._add(_AdapterEntry(name=name, instance=adapter, source=source))

    def register_factory(self, name: str, factory: AdapterFactory, source: str = "") -> None:
        """
        Register a factory, called with a :class:`ProviderConfig` the first
        time the adapter is requested.

        Raises:
            ValueError: If name is empty
        """
        self._add(_AdapterEntry(name=name, factory=factory, source=source))

    def get(self, name: str, config: ProviderConfig | None = None) -> LLMAdapter:
        """
        Get an adapter by name, creating it from its factory if needed.

        Raises:
            KeyError: If adapter not found
            RuntimeError: If a factory needs a config but none was provided
        """
        entry = self._entries.get(name)
        if entry is None:
            available = ", ".join(self._entries.keys()) or "(none)"
            raise KeyError(f"Adapter '{name}' not found. Available: {available}")

        if entry.instance is not None:
            return entry.instance

        if entry.factory is not None:
            if config is None:
                raise RuntimeError(f"Adapter '{name}' requires a ProviderConfig for creation")
            logger.debug("Creating adapter '%s' from factory", name)
            entry.instance = entry.factory(config)
            return entry.instance

        raise RuntimeError(f"Adapter '{name}' has no instance or factory")

    def get_default(self, config: ProviderConfig | None = None) -> LLMAdapter | None:
        if self._default_name is None:
            return None
        return self.get(self._default_name, config=config)

    @property
    def default_name(self) -> str | None:
        return self._default_name

    def set_default(self, name: str) -> None:
        """
        Set the default adapter.

        Raises:
            KeyError: If adapter not found
        """
        if name not in self._entries:
            available = ", ".join(self._entries.keys()) or "(none)"
            raise KeyError(f"Adapter '{name}' not found. Available: {available}")
        self._default_name = name
        logger.debug("Default adapter set to: %s", name)

    def unregister(self, name: str) -> bool:
        """Remove a registered adapter. Returns False if it was not registered."""
        if name not in self._entries:
            return False
        del self._entries[name]
        logger.debug("Unregistered adapter: %s", name)
        if self._default_name == name:
            self._default_name = next(iter(self._entries), None)
        return True

    def unregister_by_source(self, source: str) -> int:
        to_remove = [name for name, entry in self._entries.items() if entry.source == source]
        for name in to_remove:
            self.unregister(name)
        return len(to_remove)

    def list_adapters(self) -> list[str]:
        return list(self._entries.keys())

    def get_info(self, name: str) -> dict[str, Any]:
        entry = self._entries.get(name)
        if entry is None:
            raise KeyError(f"Adapter '{name}' not found")
        return {
            "name": entry.name,
            "source": entry.source,
            "has_instance": entry.instance is not None,
            "has_factory": entry.factory is not None,
            "is_default": entry.name == self._default_name,
        }

    def clear(self) -> None:
        self._entries.clear()
        self._default_name = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __repr__(self) -> str:
        names = ", ".join(self._entries.keys())
        default = f" default={self._default_name}" if self._default_name else ""
        return f"AdapterRegistry([{names}]{default})"


# ---------------------------------------------------------------------------
# Built-in factories
# ---------------------------------------------------------------------------


def _adapter_kwargs(config: ProviderConfig, client: httpx.AsyncClient | None) -> dict[str, Any]:
    return {
        "model": config.model,
        "api_key": config.api_key,
        "base_url": config.base_url,
        "max_tokens": config.max_tokens,
        "temperature": config.temperature,
        "timeout": config.timeout,
        "client": client,
    }


def _openai_factory(config: ProviderConfig, client: httpx.AsyncClient | None = None) -> LLMAdapter:
    from coding_agent_engine.adapters.openai import OpenAIAdapter

    return OpenAIAdapter(**_adapter_kwargs(config, client))


def _anthropic_factory(
    config: ProviderConfig, client: httpx.AsyncClient | None = None
) -> LLMAdapter:
    from coding_agent_engine.adapters.anthropic import AnthropicAdapter

    return AnthropicAdapter(**_adapter_kwargs(config, client))


def create_adapter(
    config: ProviderConfig,
    client: httpx.AsyncClient | None = None,
    registry: AdapterRegistry | None = None,
) -> LLMAdapter:
    """
    Resolve the adapter for ``config.provider`` through ``registry``, which
    defaults to one holding the bundled providers.

    Raises:
        ValueError: If the registry has no adapter under that name
    """
    if registry is None:
        registry = AdapterRegistry.with_builtin_providers(client)
    if config.provider not in registry:
        available = ", ".join(registry.list_adapters()) or "(none)"
        raise ValueError(f"Unknown provider '{config.provider}'. Available: {available}")
    return registry.get(config.provider, config)
