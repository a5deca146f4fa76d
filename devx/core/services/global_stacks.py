"""
Global stacks — always-on stacks started alongside any devx stack.

Each stack lives in its own YAML file under ``<devx home>/global-stacks``::

    global-stacks/
        mailhog.yml      # {priority: 10, config: {name: mailhog, services: ...}}
        traefik.yaml     # {enabled: false, config: {...}}

File shape::

    name: traefik          # optional — defaults to the filename stem
    enabled: true          # default true
    priority: 10           # default 0; higher starts first, stops last
    config: <StackConfig>

A missing directory means no global stacks. A file that fails to parse
or validate is logged and skipped; the rest still load. Batch operations
never raise: one stack failing is logged and the next one is attempted.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

from devx.core.config.loader import LoadedStack, format_violations
from devx.core.context import get_global_stacks_dir
from devx.core.engine.orchestrator import LifecycleOrchestrator
from devx.core.errors import describe_error
from devx.core.models.stack import StackConfig

logger = logging.getLogger(__name__)

GLOBAL_STACK_EXTENSIONS = (".yml", ".yaml")


class GlobalStack(BaseModel):
    """One always-on stack definition."""

    name: str
    enabled: bool = True
    priority: int = 0
    config: StackConfig


def load_global_stack(path: Path) -> GlobalStack | None:
    """Load a single global stack file.

    Returns:
        GlobalStack model, or None if loading fails.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.error("Failed to load global stack %s: %s", path.name, e)
        return None

    if not isinstance(data, dict):
        logger.error("Failed to load global stack %s: expected a mapping", path.name)
        return None

    if not data.get("name"):
        data = {**data, "name": path.stem}
    try:
        stack = GlobalStack.model_validate(data)
    except ValidationError as e:
        logger.error(
            "Failed to load global stack %s: %s", path.name, "; ".join(format_violations(e))
        )
        return None

    logger.debug("Loaded global stack: %s from %s", stack.name, path)
    return stack


class GlobalStackManager:
    """Loads always-on stacks and runs them as a batch through the orchestrator."""

    def __init__(
        self,
        orchestrator: LifecycleOrchestrator,
        stacks_dir: Path | None = None,
    ):
        self._orchestrator = orchestrator
        self._dir = stacks_dir or get_global_stacks_dir()
        self._stacks: dict[str, GlobalStack] = {}
        self._paths: dict[str, Path] = {}
        self.load()

    @property
    def stacks(self) -> dict[str, GlobalStack]:
        return self._stacks

    @property
    def stacks_dir(self) -> Path:
        return self._dir

    def load(self) -> dict[str, GlobalStack]:
        """(Re)scan the directory. Bad files are skipped, never fatal."""
        self._stacks = {}
        self._paths = {}

        if not self._dir.is_dir():
            logger.debug("Global stacks directory not found: %s", self._dir)
            return self._stacks

        for path in sorted(self._dir.iterdir()):
            if not path.is_file() or path.suffix.lower() not in GLOBAL_STACK_EXTENSIONS:
                continue
            stack = load_global_stack(path)
            if stack is None:
                continue
            if stack.name in self._stacks:
                logger.warning(
                    "Duplicate global stack '%s' in %s; keeping %s",
                    stack.name,
                    path.name,
                    self._paths[stack.name].name,
                )
                continue
            self._stacks[stack.name] = stack
            self._paths[stack.name] = path.resolve()

        logger.info("Loaded %d global stacks: %s", len(self._stacks), list(self._stacks))
        return self._stacks

    def start_all(self) -> list[str]:
        """Build then start every enabled stack, highest priority first.

        Returns:
            Names of the stacks that started.
        """
        started = []
        for stack in self._ordered(descending=True, enabled_only=True):
            loaded = self._loaded(stack)
            try:
                self._orchestrator.build_stack(loaded)
                self._orchestrator.start_stack(loaded)
            except Exception as e:
                logger.error("Failed to start global stack %s: %s", stack.name, describe_error(e))
                continue
            started.append(stack.name)
        return started

    def stop_all(self) -> list[str]:
        """Stop every loaded stack, lowest priority first.

        Returns:
            Names of the stacks that stopped.
        """
        stopped = []
        for stack in self._ordered(descending=False, enabled_only=False):
            try:
                self._orchestrator.stop_stack(self._loaded(stack))
            except Exception as e:
                logger.error("Failed to stop global stack %s: %s", stack.name, describe_error(e))
                continue
            stopped.append(stack.name)
        return stopped

    def status(self) -> dict[str, str]:
        """Status value per stack, or ``"error: <message>"`` if the query failed."""
        result: dict[str, str] = {}
        for name, stack in self._stacks.items():
            try:
                report = self._orchestrator.status_stack(self._loaded(stack))
            except Exception as e:
                result[name] = f"error: {e}"
                continue
            result[name] = report.status.value
        return result

    # ── Helpers ─────────────────────────────────────────────────

    def _ordered(self, descending: bool, enabled_only: bool) -> list[GlobalStack]:
        stacks = [s for s in self._stacks.values() if s.enabled or not enabled_only]
        # sorted() is stable: equal priorities keep filename order
        return sorted(stacks, key=lambda s: s.priority, reverse=descending)

    def _loaded(self, stack: GlobalStack) -> LoadedStack:
        return LoadedStack(config=stack.config, config_path=self._paths[stack.name])
