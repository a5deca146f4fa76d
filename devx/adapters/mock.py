"""
Mock plugins — test doubles for the builder and engine protocols.

Used by tests (and by anyone wiring devx without podman) to simulate
plugin behavior without touching external tools. By default every call
succeeds; failures and status reports are configurable per operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from devx.adapters.base import (
    BuilderPlugin,
    BuildResult,
    EnginePlugin,
    Plugin,
    ServiceStatus,
    StackStatusInfo,
)
from devx.core.models.stack import StackConfig
from devx.core.models.state import StackStatus


@dataclass
class MockCall:
    """One recorded plugin call."""

    operation: str
    stack: str
    project_path: Path | None = None
    options: dict[str, Any] | None = None


class _CallRecorder:
    def __init__(self) -> None:
        self._call_log: list[MockCall] = []
        self._failures: dict[str, Exception] = {}

    @property
    def call_log(self) -> list[MockCall]:
        """All calls this mock has received, in order."""
        return self._call_log

    @property
    def operations(self) -> list[str]:
        """Just the operation names, in call order."""
        return [c.operation for c in self._call_log]

    def calls_for(self, operation: str) -> list[MockCall]:
        return [c for c in self._call_log if c.operation == operation]

    def set_failure(self, operation: str, error: str | Exception = "Mock failure") -> None:
        """Configure an operation to raise."""
        self._failures[operation] = error if isinstance(error, Exception) else RuntimeError(error)

    def clear_failure(self, operation: str) -> None:
        self._failures.pop(operation, None)

    def reset(self) -> None:
        """Clear call log and configured failures."""
        self._call_log.clear()
        self._failures.clear()

    def _record(self, call: MockCall) -> None:
        self._call_log.append(call)
        if call.operation in self._failures:
            raise self._failures[call.operation]


class MockBuilder(_CallRecorder, BuilderPlugin):
    """Builder that records calls and optionally fails."""

    def __init__(self, builder_name: str = "mock-builder", available: bool = True):
        super().__init__()
        self._name = builder_name
        self._available = available
        self.manifest_path: str | None = None

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return self._available

    def generate_config(self, config: StackConfig, project_path: Path) -> Path:
        self._record(MockCall("generate_config", config.name, project_path))
        return project_path / f"{config.name}.mock.yaml"

    def build(
        self,
        config: StackConfig,
        project_path: Path,
        options: dict[str, Any] | None = None,
    ) -> BuildResult:
        self._record(MockCall("build", config.name, project_path, options))
        return BuildResult(manifest_path=self.manifest_path)


class MockEngine(_CallRecorder, EnginePlugin):
    """Engine that records lifecycle calls and reports configurable statuses."""

    def __init__(self, engine_name: str = "mock-engine", available: bool = True):
        super().__init__()
        self._name = engine_name
        self._available = available
        self._services: dict[str, dict[str, StackStatus]] = {}

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return self._available

    def set_services(self, stack: str, services: dict[str, StackStatus | str]) -> None:
        """Statuses reported for ``stack``'s services (default: none)."""
        self._services[stack] = {k: StackStatus(v) for k, v in services.items()}

    def start(self, config: StackConfig, project_path: Path) -> None:
        self._record(MockCall("start", config.name, project_path))

    def stop(self, config: StackConfig, project_path: Path) -> None:
        self._record(MockCall("stop", config.name, project_path))

    def destroy(
        self,
        config: StackConfig,
        project_path: Path,
        remove_volumes: bool = False,
    ) -> None:
        self._record(
            MockCall("destroy", config.name, project_path, {"remove_volumes": remove_volumes})
        )

    def get_stack_status(self, stack_name: str, project_path: Path) -> StackStatusInfo:
        self._record(MockCall("get_stack_status", stack_name, project_path))
        services = self._services.get(stack_name, {})
        return StackStatusInfo(
            services={
                name: ServiceStatus(status=status, raw_status=status.value)
                for name, status in services.items()
            }
        )


def mock_plugins(
    builder: MockBuilder | None = None,
    engine: MockEngine | None = None,
) -> list[Plugin]:
    """Plugins wrapping the given (or fresh) mocks, ready for bootstrap_plugins()."""
    builder = builder or MockBuilder()
    engine = engine or MockEngine()
    return [
        Plugin(name=builder.name, version="0.0.0", builder=builder),
        Plugin(name=engine.name, version="0.0.0", engine=engine),
    ]
