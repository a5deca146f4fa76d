"""
Plugin resolver — picks the builder and engine for a stack.

Precedence, per capability:

    stack config (builder.name / engine.name)
      > global default (default_builder / default_engine)
      > NoDefaultConfiguredError

The chosen name must be registered (PluginNotRegisteredError) and the
plugin must provide the capability (PluginMissingCapabilityError).
Resolution only reads its inputs and the registry.
"""

from __future__ import annotations

from devx.adapters.base import BuilderPlugin, Capability, EnginePlugin, Plugin
from devx.adapters.registry import PluginRegistry
from devx.core.config.global_config import GlobalConfig
from devx.core.errors import (
    NoDefaultConfiguredError,
    PluginMissingCapabilityError,
    PluginNotRegisteredError,
)
from devx.core.models.stack import StackConfig


def resolve_plugin_name(
    config: StackConfig,
    defaults: GlobalConfig,
    capability: Capability,
) -> str:
    """The plugin name that should serve ``capability`` for this stack."""
    if capability is Capability.BUILDER:
        override, default = config.builder, defaults.default_builder
    else:
        override, default = config.engine, defaults.default_engine

    if override is not None and override.name:
        return override.name
    if default:
        return default
    raise NoDefaultConfiguredError(
        f"No {capability.value} specified for stack '{config.name}' "
        f"and no default {capability.value} configured."
    )


class PluginResolver:
    """Resolves concrete plugin instances from a registry."""

    def __init__(self, registry: PluginRegistry):
        self._registry = registry

    def resolve_builder(self, config: StackConfig, defaults: GlobalConfig) -> BuilderPlugin:
        plugin = self._lookup(config, defaults, Capability.BUILDER)
        builder = plugin.as_builder()
        if builder is None:
            raise PluginMissingCapabilityError(
                f"Plugin '{plugin.name}' does not provide a builder "
                f"(needed by stack '{config.name}')."
            )
        return builder

    def resolve_engine(self, config: StackConfig, defaults: GlobalConfig) -> EnginePlugin:
        plugin = self._lookup(config, defaults, Capability.ENGINE)
        engine = plugin.as_engine()
        if engine is None:
            raise PluginMissingCapabilityError(
                f"Plugin '{plugin.name}' does not provide an engine "
                f"(needed by stack '{config.name}')."
            )
        return engine

    def _lookup(
        self,
        config: StackConfig,
        defaults: GlobalConfig,
        capability: Capability,
    ) -> Plugin:
        name = resolve_plugin_name(config, defaults, capability)
        plugin = self._registry.get(name)
        if plugin is None:
            raise PluginNotRegisteredError(
                f"{capability.value.capitalize()} plugin '{name}' for stack "
                f"'{config.name}' is not registered."
            )
        return plugin
