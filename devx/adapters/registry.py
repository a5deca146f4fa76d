"""
Plugin registry — the table of plugins known to this process.

The registry is an ordinary object handed to the orchestrator, not a
module-level singleton: tests build their own, and the CLI builds one
at startup with bootstrap_plugins(). Plugins are registered explicitly;
importing a plugin module never registers anything.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from devx.adapters.base import Capability, Plugin
from devx.core.errors import DuplicatePluginError

logger = logging.getLogger(__name__)


class PluginRegistry:
    """Name → Plugin table.

    Features:
        - Register plugins by name (duplicates rejected)
        - Look up by name
        - Filter by capability (engine / builder)
        - Query availability of every registered capability

    There is no unregister: a registry lives as long as the process.
    """

    def __init__(self) -> None:
        self._plugins: dict[str, Plugin] = {}

    def register(self, plugin: Plugin) -> None:
        """Register a plugin.

        Raises:
            DuplicatePluginError: A plugin with the same name is already registered.
        """
        if plugin.name in self._plugins:
            raise DuplicatePluginError(
                f"Plugin with name '{plugin.name}' is already registered."
            )
        self._plugins[plugin.name] = plugin
        logger.debug(
            "Registered plugin: %s (v%s) [%s]",
            plugin.name,
            plugin.version,
            ", ".join(c.value for c in plugin.capabilities) or "no capabilities",
        )

    def get(self, name: str) -> Plugin | None:
        """Look up a plugin by name."""
        return self._plugins.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins

    def __len__(self) -> int:
        return len(self._plugins)

    def list_plugins(self) -> list[Plugin]:
        """All registered plugins, in registration order."""
        return list(self._plugins.values())

    def list_by_capability(self, capability: Capability | str) -> list[Plugin]:
        """Plugins exposing the given capability."""
        capability = Capability(capability)
        return [p for p in self._plugins.values() if p.has_capability(capability)]

    def plugin_status(self) -> dict[str, dict[str, Any]]:
        """Availability of every registered plugin's capabilities."""
        status = {}
        for name, plugin in self._plugins.items():
            available = {}
            for cap, impl in (
                (Capability.BUILDER, plugin.as_builder()),
                (Capability.ENGINE, plugin.as_engine()),
            ):
                if impl is None:
                    continue
                try:
                    available[cap.value] = bool(impl.is_available())
                except Exception:
                    available[cap.value] = False
            status[name] = {
                "name": name,
                "version": plugin.version,
                "description": plugin.description,
                "capabilities": [c.value for c in plugin.capabilities],
                "available": available,
            }
        return status


def bootstrap_plugins(
    plugins: Iterable[Plugin],
    registry: PluginRegistry | None = None,
) -> PluginRegistry:
    """Register ``plugins`` into ``registry`` (a new one if omitted).

    Called once by the host program at startup.
    """
    if registry is None:
        registry = PluginRegistry()
    for plugin in plugins:
        registry.register(plugin)
    return registry


def default_plugins() -> list[Plugin]:
    """The built-in plugins: podman-compose (builder) and podman (engine)."""
    from devx.adapters.builders.podman_compose import PodmanComposeBuilder
    from devx.adapters.engines.podman import PodmanEngine

    return [
        Plugin(
            name=PodmanComposeBuilder.NAME,
            version="1.0.0",
            description="Builds and runs stacks with podman-compose",
            builder=PodmanComposeBuilder(),
        ),
        Plugin(
            name=PodmanEngine.NAME,
            version="1.0.0",
            description="Queries container status from podman",
            engine=PodmanEngine(),
        ),
    ]
