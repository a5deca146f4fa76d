"""
Error taxonomy for devx.

Every error the core raises derives from DevxError so the CLI can catch
one type, print it, and exit 1. Underlying causes are always chained
with ``raise ... from`` and remain reachable through ``__cause__``.

    DevxError
    ├── ConfigError
    │   ├── ConfigNotFoundError
    │   ├── ConfigParseError
    │   └── ConfigInvalidError        (.violations)
    ├── PluginError
    │   ├── DuplicatePluginError
    │   ├── PluginNotRegisteredError
    │   ├── PluginMissingCapabilityError
    │   └── NoDefaultConfiguredError
    ├── PersistenceError
    │   ├── PersistenceWriteError
    │   └── MissingConfigPathError
    └── DelegateFailure               (.stack, .operation)

Read-side persistence problems are never raised: the state store logs
a warning and falls back to an empty state.
"""

from __future__ import annotations

from pathlib import Path


class DevxError(Exception):
    """Base class for all devx errors."""


# ── Configuration ────────────────────────────────────────────────


class ConfigError(DevxError):
    """A stack configuration could not be found, parsed, or validated."""

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class ConfigNotFoundError(ConfigError):
    """No stack configuration matched the identifier or search."""


class ConfigParseError(ConfigError):
    """The configuration file is not valid YAML/JSON (or unreadable)."""


class ConfigInvalidError(ConfigError):
    """The configuration parsed but violates the stack schema."""

    def __init__(
        self,
        message: str,
        path: Path | str | None = None,
        violations: list[str] | None = None,
    ):
        super().__init__(message, path)
        self.violations = list(violations or [])


# ── Plugins ──────────────────────────────────────────────────────


class PluginError(DevxError):
    """Plugin registration or resolution failed."""


class DuplicatePluginError(PluginError):
    """A plugin with the same name is already registered."""


class PluginNotRegisteredError(PluginError):
    """The resolved plugin name is not in the registry."""


class PluginMissingCapabilityError(PluginError):
    """The plugin is registered but does not provide the capability."""


class NoDefaultConfiguredError(PluginError):
    """Neither the stack nor the global config names a plugin."""


# ── Persistence ──────────────────────────────────────────────────


class PersistenceError(DevxError):
    """State persistence failed."""


class PersistenceWriteError(PersistenceError):
    """The state file could not be written."""


class MissingConfigPathError(PersistenceError):
    """A new state record was requested without a config path."""


# ── Delegates ────────────────────────────────────────────────────


class DelegateFailure(DevxError):
    """A builder/engine plugin call failed for a stack operation."""

    def __init__(self, message: str, stack: str = "", operation: str = ""):
        super().__init__(message)
        self.stack = stack
        self.operation = operation


def describe_error(error: BaseException) -> str:
    """Message of an error followed by its cause chain, one level per arrow."""
    parts = [str(error) or error.__class__.__name__]
    seen = {id(error)}
    cause = error.__cause__
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        text = str(cause) or cause.__class__.__name__
        # Wrappers often embed their cause's message already
        if text not in parts[-1]:
            parts.append(text)
        cause = cause.__cause__
    return " → ".join(parts)
