"""
StackState — the persisted lifecycle record of one stack.

One record per stack name, all records stored together in a single
JSON document (DevxState) at ``<devx home>/state.json``. The file uses
camelCase keys; Python code uses the snake_case attribute names.

    {
      "demo": {
        "name": "demo",
        "configPath": "/work/demo/.stack.yml",
        "buildStatus": "built",
        "runtimeStatus": "running",
        "lastBuiltAt": "2026-10-19T12:00:00+00:00",
        "lastStartedAt": "2026-10-19T12:00:05+00:00",
        "manifestPath": "/work/demo/.devx/dist/demo.podman-compose.yaml",
        "lastError": null
      }
    }
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, RootModel
from pydantic.alias_generators import to_camel

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


class BuildStatus(str, Enum):
    """Whether the stack's images/manifests have been built."""

    UNKNOWN = "unknown"
    NOT_BUILT = "not_built"
    BUILDING = "building"
    BUILT = "built"
    ERROR = "error"


class StackStatus(str, Enum):
    """Runtime status of a stack, or of a single service within it."""

    UNKNOWN = "unknown"
    BUILDING = "building"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    DESTROYING = "destroying"
    ERROR = "error"
    NOT_CREATED = "not_created"


class StackState(BaseModel):
    """Last known build/runtime status of a stack."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    name: str
    config_path: str

    build_status: BuildStatus = BuildStatus.NOT_BUILT
    runtime_status: StackStatus = StackStatus.UNKNOWN

    last_built_at: datetime | None = None
    last_started_at: datetime | None = None

    manifest_path: str | None = None
    last_error: str | None = None

    def to_json_dict(self) -> dict:
        """camelCase, JSON-safe form (dates as ISO-8601 strings)."""
        return self.model_dump(mode="json", by_alias=True)


class DevxState(RootModel[dict[str, StackState]]):
    """Every stack's state, keyed by stack name. Read and written as a unit."""

    root: dict[str, StackState] = Field(default_factory=dict)

    def __getitem__(self, name: str) -> StackState:
        return self.root[name]

    def __contains__(self, name: object) -> bool:
        return name in self.root

    def __len__(self) -> int:
        return len(self.root)

    def get(self, name: str) -> StackState | None:
        return self.root.get(name)

    def names(self) -> list[str]:
        return list(self.root.keys())
