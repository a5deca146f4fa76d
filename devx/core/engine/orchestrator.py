"""
Lifecycle orchestrator — build / start / stop / destroy / status.

This is the core state machine. Each operation:
    1. Loads the stack config (and creates its state row on first sight)
    2. Resolves the plugin that handles it
    3. Calls the plugin (a "delegate call")
    4. Records the outcome in the state store — success or failure
    5. Returns, or raises DelegateFailure

Delegation split:
    builder   build (images built, containers created)
    engine    start, stop, destroy, status

Failure reporting:
    build / start / stop / destroy record the failure in state, then
    raise DelegateFailure with the plugin's exception as __cause__.
    status never raises for a plugin failure: it records the failure
    and returns a report whose status is ERROR.

    Config and plugin-resolution errors are raised as-is, before any
    plugin is called.

Transitions (persisted):

    operation  before call            success                          failure
    ─────────  ─────────────────────  ───────────────────────────────  ───────────────────
    build      build=building         build=built, lastBuiltAt=now     build=error
    start      runtime=starting       runtime=running, lastStarted=now runtime=error
    stop       runtime=stopping       runtime=stopped, lastStarted=∅   runtime=unknown
    destroy    runtime=destroying     row removed, manifest deleted    runtime=error
    status     —                      runtime=<aggregate>              runtime=unknown

Every success clears lastError; every failure sets it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from devx.adapters.base import BuildResult, ServiceStatus
from devx.adapters.registry import PluginRegistry
from devx.adapters.resolver import PluginResolver
from devx.core.config.global_config import GlobalConfig, load_global_config
from devx.core.config.loader import LoadedStack, load_stack_config
from devx.core.config.metadata import MetadataStore
from devx.core.errors import DelegateFailure, DevxError, PersistenceError
from devx.core.models.state import BuildStatus, StackState, StackStatus, utc_now
from devx.core.persistence.state_file import StateStore, initial_state

logger = logging.getLogger(__name__)


# ── Status aggregation ───────────────────────────────────────────


def aggregate_status(statuses: Iterable[StackStatus]) -> StackStatus:
    """Collapse per-service statuses into one stack status.

    Precedence (first rule that matches wins):
        no services                  → NOT_CREATED
        any ERROR                    → ERROR
        all RUNNING                  → RUNNING
        all STOPPED                  → STOPPED
        any STARTING or BUILDING     → STARTING
        any STOPPING                 → STOPPING
        otherwise                    → UNKNOWN
    """
    values = [StackStatus(s) for s in statuses]
    if not values:
        return StackStatus.NOT_CREATED
    if StackStatus.ERROR in values:
        return StackStatus.ERROR
    if all(v is StackStatus.RUNNING for v in values):
        return StackStatus.RUNNING
    if all(v is StackStatus.STOPPED for v in values):
        return StackStatus.STOPPED
    if any(v in (StackStatus.STARTING, StackStatus.BUILDING) for v in values):
        return StackStatus.STARTING
    if StackStatus.STOPPING in values:
        return StackStatus.STOPPING
    return StackStatus.UNKNOWN


# ── Results ──────────────────────────────────────────────────────


@dataclass
class DelegateOutcome:
    """Result of one plugin call. Plugin exceptions end up here, not on the stack."""

    stack: str
    operation: str
    value: Any = None
    error: Exception | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_message(self) -> str:
        if self.error is None:
            return ""
        return str(self.error) or self.error.__class__.__name__

    def raise_for_failure(self) -> None:
        """Raise DelegateFailure (cause = plugin error) if the call failed."""
        if self.error is not None:
            raise DelegateFailure(
                f"Failed to {self.operation} stack '{self.stack}': {self.error_message}",
                stack=self.stack,
                operation=self.operation,
            ) from self.error


@dataclass
class StackStatusReport:
    """What status() returns — always, even when the engine failed."""

    name: str
    status: StackStatus
    services: dict[str, ServiceStatus] = field(default_factory=dict)
    message: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "services": {
                name: svc.model_dump(mode="json") for name, svc in self.services.items()
            },
        }
        if self.message:
            result["message"] = self.message
        if self.error:
            result["error"] = self.error
        return result


# ── Orchestrator ─────────────────────────────────────────────────


class LifecycleOrchestrator:
    """Runs stack lifecycle operations against injected plugins and state."""

    def __init__(
        self,
        registry: PluginRegistry,
        state: StateStore | None = None,
        global_config: GlobalConfig | None = None,
        metadata: MetadataStore | None = None,
        search_dir: Path | None = None,
    ):
        self._resolver = PluginResolver(registry)
        self._state = state or StateStore()
        self._global_config = global_config
        self._metadata = metadata or MetadataStore()
        self._search_dir = search_dir

    @property
    def state(self) -> StateStore:
        return self._state

    @property
    def global_config(self) -> GlobalConfig:
        if self._global_config is None:
            self._global_config = load_global_config()
        return self._global_config

    # ── Identifier-based operations (CLI entry points) ──────────

    def load(self, identifier: str | None = None) -> LoadedStack:
        """Load a stack config and make sure it has a state row."""
        stack = load_stack_config(identifier, self._search_dir, self._metadata)
        self._ensure_state(stack)
        return stack

    def build(self, identifier: str | None = None) -> StackState:
        return self.build_stack(self.load(identifier))

    def start(self, identifier: str | None = None) -> StackState:
        return self.start_stack(self.load(identifier))

    def stop(self, identifier: str | None = None) -> StackState:
        return self.stop_stack(self.load(identifier))

    def destroy(self, identifier: str | None = None, remove_volumes: bool = False) -> None:
        self.destroy_stack(self.load(identifier), remove_volumes=remove_volumes)

    def status(self, identifier: str | None = None) -> StackStatusReport:
        return self.status_stack(self.load(identifier))

    def list_states(self) -> list[StackState]:
        """Every stack devx currently has state for, sorted by name."""
        state = self._state.load_all()
        return [state[name] for name in sorted(state.names())]

    # ── Loaded-stack operations ─────────────────────────────────

    def build_stack(self, stack: LoadedStack) -> StackState:
        self._ensure_state(stack)
        builder = self._resolver.resolve_builder(stack.config, self.global_config)

        logger.info("Building stack '%s' using builder '%s'", stack.name, builder.name)
        self._state.update(stack.name, build_status=BuildStatus.BUILDING)

        outcome = self._delegate(
            stack,
            "build",
            builder.build,
            stack.config,
            stack.project_path,
            stack.config.builder_options,
        )
        if not outcome.ok:
            self._record_failure(
                stack.name,
                build_status=BuildStatus.ERROR,
                last_error=outcome.error_message,
            )
            outcome.raise_for_failure()

        changes: dict[str, Any] = {
            "build_status": BuildStatus.BUILT,
            "last_built_at": utc_now(),
            "last_error": None,
        }
        if isinstance(outcome.value, BuildResult) and outcome.value.manifest_path:
            changes["manifest_path"] = outcome.value.manifest_path
            logger.info("Manifest generated at: %s", outcome.value.manifest_path)

        record = self._state.update(stack.name, **changes)
        logger.info("Stack '%s' built successfully", stack.name)
        return record

    def start_stack(self, stack: LoadedStack) -> StackState:
        self._ensure_state(stack)
        current = self._state.get_one(stack.name)

        if current is None or current.build_status is not BuildStatus.BUILT:
            logger.warning(
                "Stack '%s' is not built (build status: %s); building first",
                stack.name,
                current.build_status.value if current else "unknown",
            )
            try:
                self.build_stack(stack)
            except DevxError as e:
                raise DelegateFailure(
                    f"Build failed for stack '{stack.name}', cannot start.",
                    stack=stack.name,
                    operation="start",
                ) from e

            current = self._state.get_one(stack.name)
            if current is None or current.build_status is not BuildStatus.BUILT:
                raise DelegateFailure(
                    f"Build failed for stack '{stack.name}', cannot start.",
                    stack=stack.name,
                    operation="start",
                )

        engine = self._resolver.resolve_engine(stack.config, self.global_config)

        logger.info("Starting stack '%s' using engine '%s'", stack.name, engine.name)
        self._state.update(stack.name, runtime_status=StackStatus.STARTING)

        outcome = self._delegate(stack, "start", engine.start, stack.config, stack.project_path)
        if not outcome.ok:
            self._record_failure(
                stack.name,
                runtime_status=StackStatus.ERROR,
                last_error=outcome.error_message,
            )
            outcome.raise_for_failure()

        record = self._state.update(
            stack.name,
            runtime_status=StackStatus.RUNNING,
            last_started_at=utc_now(),
            last_error=None,
        )
        logger.info("Stack '%s' started successfully", stack.name)
        return record

    def stop_stack(self, stack: LoadedStack) -> StackState:
        self._ensure_state(stack)
        engine = self._resolver.resolve_engine(stack.config, self.global_config)

        logger.info("Stopping stack '%s' using engine '%s'", stack.name, engine.name)
        self._state.update(stack.name, runtime_status=StackStatus.STOPPING)

        outcome = self._delegate(stack, "stop", engine.stop, stack.config, stack.project_path)
        if not outcome.ok:
            # The stack may be partly down; we can't tell
            self._record_failure(
                stack.name,
                runtime_status=StackStatus.UNKNOWN,
                last_error=outcome.error_message,
            )
            outcome.raise_for_failure()

        record = self._state.update(
            stack.name,
            runtime_status=StackStatus.STOPPED,
            last_started_at=None,
            last_error=None,
        )
        logger.info("Stack '%s' stopped successfully", stack.name)
        return record

    def destroy_stack(self, stack: LoadedStack, remove_volumes: bool = False) -> None:
        self._ensure_state(stack)
        engine = self._resolver.resolve_engine(stack.config, self.global_config)

        current = self._state.get_one(stack.name)
        manifest_path = current.manifest_path if current else None

        logger.info("Destroying stack '%s' using engine '%s'", stack.name, engine.name)
        self._state.update(stack.name, runtime_status=StackStatus.DESTROYING)

        outcome = self._delegate(
            stack,
            "destroy",
            engine.destroy,
            stack.config,
            stack.project_path,
            remove_volumes,
        )
        if not outcome.ok:
            self._record_failure(
                stack.name,
                runtime_status=StackStatus.ERROR,
                last_error=f"Destroy failed: {outcome.error_message}",
            )
            outcome.raise_for_failure()

        self._state.remove(stack.name)
        self._metadata.remove(stack.name)
        logger.info("Stack '%s' destroyed; state removed", stack.name)

        if manifest_path:
            _remove_manifest(Path(manifest_path))

    def status_stack(self, stack: LoadedStack) -> StackStatusReport:
        self._ensure_state(stack)
        current = self._state.get_one(stack.name)

        if current is not None and current.build_status is BuildStatus.NOT_BUILT:
            logger.info("Stack '%s' is not built, reporting status as stopped", stack.name)
            if current.runtime_status is not StackStatus.STOPPED:
                self._state.update(stack.name, runtime_status=StackStatus.STOPPED)
            return StackStatusReport(
                name=stack.name,
                status=StackStatus.STOPPED,
                message="Stack has not been built",
            )

        engine = self._resolver.resolve_engine(stack.config, self.global_config)
        logger.info("Checking status of stack '%s' using engine '%s'", stack.name, engine.name)

        outcome = self._delegate(
            stack,
            "status",
            engine.get_stack_status,
            stack.name,
            stack.project_path,
        )
        if not outcome.ok:
            message = f"Status check failed: {outcome.error_message}"
            self._record_failure(
                stack.name,
                runtime_status=StackStatus.UNKNOWN,
                last_error=message,
            )
            return StackStatusReport(
                name=stack.name,
                status=StackStatus.ERROR,
                error=message,
            )

        info = outcome.value
        aggregate = aggregate_status(svc.status for svc in info.services.values())
        logger.info("Reported status for stack '%s': %s", stack.name, aggregate.value)

        previous_error = current.last_error if current else None
        self._state.update(
            stack.name,
            runtime_status=aggregate,
            last_error=previous_error if aggregate is StackStatus.ERROR else None,
        )
        return StackStatusReport(
            name=stack.name,
            status=aggregate,
            services=dict(info.services),
            message=info.message,
        )

    # ── Helpers ─────────────────────────────────────────────────

    def _ensure_state(self, stack: LoadedStack) -> None:
        if self._state.get_one(stack.name) is not None:
            return
        logger.debug("Initializing state for new stack: %s", stack.name)
        record = initial_state(stack.config, stack.config_path)
        self._state.update(stack.name, **record.model_dump(exclude={"name"}))

    def _delegate(
        self,
        stack: LoadedStack,
        operation: str,
        call: Callable[..., Any],
        *args: Any,
    ) -> DelegateOutcome:
        start = time.monotonic()
        try:
            value = call(*args)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error("Failed to %s stack '%s': %s", operation, stack.name, e)
            return DelegateOutcome(stack.name, operation, error=e, duration_ms=elapsed_ms)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug("%s of stack '%s' took %dms", operation, stack.name, elapsed_ms)
        return DelegateOutcome(stack.name, operation, value=value, duration_ms=elapsed_ms)

    def _record_failure(self, name: str, **changes: Any) -> None:
        """Persist a failure; a write error here must not mask the plugin error."""
        try:
            self._state.update(name, **changes)
        except PersistenceError as e:
            logger.error("Failed to record failure state for stack '%s': %s", name, e)


def _remove_manifest(path: Path) -> None:
    """Best-effort removal of a generated manifest."""
    try:
        if path.is_file():
            path.unlink()
            logger.info("Removed generated manifest: %s", path)
    except OSError as e:
        logger.warning("Failed to remove manifest file %s: %s", path, e)
