"""
Stack model — the declarative description of a stack.

Loaded from `.stack.yml` / `.stack.yaml` / `.stack.json` and validated
here. A stack is a named set of services, analogous to a compose
project, plus optional builder/engine plugin overrides.

Unknown keys are kept (``extra="allow"``) at every level so plugins can
read their own extensions.
"""

from __future__ import annotations

import re
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

_PORT_RE = re.compile(r"^\d+(-\d+)?:\d+(-\d+)?(/(tcp|udp))?$")
_VOLUME_RE = re.compile(r"^.+:.+(:ro|:rw)?$")
_ENV_RE = re.compile(r"^[^=]+=.*$")


class PluginConfig(BaseModel):
    """Selects a non-default builder or engine plugin."""

    name: str
    options: dict[str, Any] = Field(default_factory=dict)


class BuildConfig(BaseModel):
    """Long-form build section: context directory plus optional Dockerfile."""

    model_config = ConfigDict(extra="allow")

    context: str
    dockerfile: str | None = None


class ServiceConfig(BaseModel):
    """A single service (container) of the stack."""

    model_config = ConfigDict(extra="allow")

    image: str | None = None
    build: Union[str, BuildConfig, None] = None
    ports: list[Union[int, str]] | None = None
    volumes: list[str] | None = None
    environment: Union[dict[str, str], list[str], None] = None
    depends_on: list[str] | None = None
    command: Union[str, list[str], None] = None
    entrypoint: Union[str, list[str], None] = None
    networks: list[str] | None = None

    @field_validator("ports")
    @classmethod
    def _check_ports(cls, ports: list[int | str] | None) -> list[int | str] | None:
        for port in ports or []:
            if isinstance(port, int):
                if port <= 0:
                    raise ValueError(f"container port must be positive, got {port}")
            elif not _PORT_RE.match(port):
                raise ValueError(
                    f"invalid port mapping {port!r} "
                    '(e.g. "8080:80", "8080-8081:80-81", "53:53/udp")'
                )
        return ports

    @field_validator("volumes")
    @classmethod
    def _check_volumes(cls, volumes: list[str] | None) -> list[str] | None:
        for volume in volumes or []:
            if not _VOLUME_RE.match(volume):
                raise ValueError(
                    f"invalid volume mapping {volume!r} "
                    '(e.g. "./local:/app", "my_volume:/data:ro")'
                )
        return volumes

    @field_validator("environment")
    @classmethod
    def _check_environment(
        cls, env: dict[str, str] | list[str] | None
    ) -> dict[str, str] | list[str] | None:
        if isinstance(env, list):
            for entry in env:
                if not _ENV_RE.match(entry):
                    raise ValueError(
                        f"invalid environment entry {entry!r} (expected KEY=value)"
                    )
        return env


class NetworkConfig(BaseModel):
    """A named network, passed through to the builder."""

    model_config = ConfigDict(extra="allow")

    driver: str | None = None


class VolumeConfig(BaseModel):
    """A named volume, passed through to the builder."""

    model_config = ConfigDict(extra="allow")

    driver: str | None = None


STACK_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"


class StackConfig(BaseModel):
    """Root stack definition.

    ``name`` keys every state and plugin lookup; renaming a stack makes
    it a different stack as far as devx is concerned.
    """

    model_config = ConfigDict(extra="allow")

    # Also the compose project name (-p) and a metadata file name
    name: str = Field(min_length=1, pattern=STACK_NAME_PATTERN)
    version: str | None = None

    builder: PluginConfig | None = None
    engine: PluginConfig | None = None

    services: dict[str, ServiceConfig]
    networks: dict[str, NetworkConfig] | None = None
    volumes: dict[str, VolumeConfig] | None = None

    @field_validator("services", "networks", "volumes", mode="before")
    @classmethod
    def _null_entries(cls, value: Any) -> Any:
        # `web:` or `data:` with no body parses to None
        if isinstance(value, dict):
            return {k: ({} if v is None else v) for k, v in value.items()}
        return value

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_string(cls, value: Any) -> Any:
        # compose-style `version: 3.8` parses to a float
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def service_names(self) -> list[str]:
        return list(self.services.keys())

    @property
    def builder_options(self) -> dict[str, Any]:
        """Options for the builder plugin, empty when not overridden."""
        return dict(self.builder.options) if self.builder else {}
