"""
Lifecycle use cases — what the CLI commands call.

Wires the default plugin registry, state store and global config into
an orchestrator, runs one operation, and packs the outcome into a
result object the CLI can print or dump as JSON. Errors are captured
in ``result.error`` rather than raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from devx.adapters.registry import PluginRegistry, bootstrap_plugins, default_plugins
from devx.core.engine.orchestrator import LifecycleOrchestrator, StackStatusReport
from devx.core.errors import DevxError, describe_error
from devx.core.models.state import StackState
from devx.core.persistence.state_file import StateStore
from devx.core.services.global_stacks import GlobalStackManager

logger = logging.getLogger(__name__)

OPERATIONS = ("build", "start", "stop", "destroy", "status")


@dataclass
class OperationResult:
    """Outcome of one lifecycle operation on one stack."""

    operation: str
    stack: str | None = None
    state: StackState | None = None
    report: StackStatusReport | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"operation": self.operation, "stack": self.stack}
        if self.error:
            result["error"] = self.error
            return result
        if self.state is not None:
            result["state"] = self.state.to_json_dict()
        if self.report is not None:
            result["status"] = self.report.to_dict()
        return result


@dataclass
class GlobalResult:
    """Outcome of a batch operation on the global stacks."""

    operation: str
    loaded: list[str] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    statuses: dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> list[str]:
        if self.operation == "status":
            return [n for n, s in self.statuses.items() if s.startswith("error")]
        return [n for n in self.loaded if n not in self.succeeded]

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"operation": self.operation, "loaded": self.loaded}
        if self.operation == "status":
            result["statuses"] = self.statuses
        else:
            result["succeeded"] = self.succeeded
            result["failed"] = self.failed
        return result


def make_orchestrator(
    registry: PluginRegistry | None = None,
    state: StateStore | None = None,
    search_dir: Path | None = None,
) -> LifecycleOrchestrator:
    """An orchestrator with the built-in plugins unless a registry is given."""
    if registry is None:
        registry = bootstrap_plugins(default_plugins())
    return LifecycleOrchestrator(registry=registry, state=state, search_dir=search_dir)


def run_operation(
    operation: str,
    identifier: str | None = None,
    orchestrator: LifecycleOrchestrator | None = None,
    remove_volumes: bool = False,
) -> OperationResult:
    """Run one lifecycle operation and capture the result.

    Args:
        operation: One of build, start, stop, destroy, status.
        identifier: Stack name or path (None = search from cwd).
        orchestrator: Pre-built orchestrator (default: make_orchestrator()).
        remove_volumes: destroy only — also remove named volumes.
    """
    if operation not in OPERATIONS:
        raise ValueError(f"Unknown operation '{operation}'. Valid: {', '.join(OPERATIONS)}")

    orchestrator = orchestrator or make_orchestrator()
    result = OperationResult(operation=operation, stack=identifier)

    try:
        stack = orchestrator.load(identifier)
        result.stack = stack.name
        if operation == "build":
            result.state = orchestrator.build_stack(stack)
        elif operation == "start":
            result.state = orchestrator.start_stack(stack)
        elif operation == "stop":
            result.state = orchestrator.stop_stack(stack)
        elif operation == "destroy":
            orchestrator.destroy_stack(stack, remove_volumes=remove_volumes)
        else:
            result.report = orchestrator.status_stack(stack)
            result.state = orchestrator.state.get_one(stack.name)
    except DevxError as e:
        result.error = describe_error(e)

    return result


def run_global(
    operation: str,
    orchestrator: LifecycleOrchestrator | None = None,
    stacks_dir: Path | None = None,
) -> GlobalResult:
    """start / stop / status across all global stacks."""
    manager = GlobalStackManager(orchestrator or make_orchestrator(), stacks_dir=stacks_dir)
    result = GlobalResult(operation=operation, loaded=list(manager.stacks))

    if operation == "start":
        result.loaded = [n for n, s in manager.stacks.items() if s.enabled]
        result.succeeded = manager.start_all()
    elif operation == "stop":
        result.succeeded = manager.stop_all()
    elif operation == "status":
        result.statuses = manager.status()
    else:
        raise ValueError(f"Unknown global operation '{operation}'")

    return result
