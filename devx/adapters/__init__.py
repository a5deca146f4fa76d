"""Adapters — builder and engine plugins for external container tools.

Public re-exports for convenient access.
"""

from devx.adapters.base import (
    BuilderPlugin,
    BuildResult,
    Capability,
    EnginePlugin,
    Plugin,
    ServiceStatus,
    StackStatusInfo,
)
from devx.adapters.mock import MockBuilder, MockEngine, mock_plugins
from devx.adapters.registry import PluginRegistry, bootstrap_plugins, default_plugins
from devx.adapters.resolver import PluginResolver

__all__ = [
    "BuildResult",
    "BuilderPlugin",
    "Capability",
    "EnginePlugin",
    "MockBuilder",
    "MockEngine",
    "Plugin",
    "PluginRegistry",
    "PluginResolver",
    "ServiceStatus",
    "StackStatusInfo",
    "bootstrap_plugins",
    "default_plugins",
    "mock_plugins",
]
