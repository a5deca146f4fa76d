"""
Plugin base — the protocol contract between the orchestrator and plugins.

A Plugin is a named capability bundle. It may carry a builder, an
engine, or both; the orchestrator only ever reaches them through
``as_builder()`` / ``as_engine()``, never by poking at attributes.

Division of labour:
    BuilderPlugin   turns a StackConfig into an orchestrator config
                    (e.g. a compose file), builds the images and creates
                    the containers without starting them.
    EnginePlugin    talks to the container runtime directly: starts,
                    stops, removes and inspects the stack's containers.

Plugin methods raise on failure (any exception). The orchestrator
treats every exception as a delegate failure and records it.

To create a new plugin:
    1. Subclass BuilderPlugin and/or EnginePlugin
    2. Wrap the instance(s) in a Plugin
    3. Pass it to bootstrap_plugins() at startup
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from devx.core.models.stack import StackConfig
from devx.core.models.state import StackStatus


class Capability(str, Enum):
    """What a plugin can do."""

    ENGINE = "engine"
    BUILDER = "builder"


class PortBinding(BaseModel):
    host_port: int
    container_port: int
    protocol: str = "tcp"


class ServiceStatus(BaseModel):
    """Status of one service as reported by an engine."""

    status: StackStatus = StackStatus.UNKNOWN
    raw_status: str = ""   # engine-specific, e.g. "exited (0)"
    ports: list[PortBinding] = Field(default_factory=list)


class StackStatusInfo(BaseModel):
    """An engine's report for one stack."""

    status: StackStatus = StackStatus.UNKNOWN
    message: str | None = None
    services: dict[str, ServiceStatus] = Field(default_factory=dict)


class BuildResult(BaseModel):
    """Optional return value of BuilderPlugin.build()."""

    manifest_path: str | None = None


class BuilderPlugin(ABC):
    """Generates orchestrator config and builds the stack."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The builder identifier (e.g., 'podman-compose')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying tool is installed. Fast, never raises."""

    @abstractmethod
    def generate_config(self, config: StackConfig, project_path: Path) -> Path:
        """Write the orchestrator config for the stack and return its path."""

    @abstractmethod
    def build(
        self,
        config: StackConfig,
        project_path: Path,
        options: dict[str, Any] | None = None,
    ) -> BuildResult | None:
        """Build images and create (not start) the stack's containers."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class EnginePlugin(ABC):
    """Drives and queries the container runtime."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The engine identifier (e.g., 'podman')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the runtime is installed and responsive. Never raises."""

    @abstractmethod
    def start(self, config: StackConfig, project_path: Path) -> None:
        """Start the stack's (already built) containers."""

    @abstractmethod
    def stop(self, config: StackConfig, project_path: Path) -> None:
        """Stop the stack's containers."""

    @abstractmethod
    def destroy(
        self,
        config: StackConfig,
        project_path: Path,
        remove_volumes: bool = False,
    ) -> None:
        """Remove the stack's containers (and its named volumes)."""

    @abstractmethod
    def get_stack_status(self, stack_name: str, project_path: Path) -> StackStatusInfo:
        """Per-service status of the containers belonging to a stack."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


@dataclass
class Plugin:
    """A named bundle of capabilities, registered once under ``name``."""

    name: str
    version: str = "0.0.0"
    description: str = ""
    builder: BuilderPlugin | None = None
    engine: EnginePlugin | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def as_builder(self) -> BuilderPlugin | None:
        return self.builder

    def as_engine(self) -> EnginePlugin | None:
        return self.engine

    @property
    def capabilities(self) -> list[Capability]:
        caps = []
        if self.engine is not None:
            caps.append(Capability.ENGINE)
        if self.builder is not None:
            caps.append(Capability.BUILDER)
        return caps

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities
