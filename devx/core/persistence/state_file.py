"""
State file persistence — atomic read/write for DevxState.

All stack states live in one JSON document (``state.json``) that is
always read and written as a unit. Writes are atomic (write to temp
file, then rename) so a crash mid-write never leaves a torn file.

Cache:
    load_all() fills an in-process cache; save_all() replaces it. There
    is no other invalidation, so a write made by another process after
    our first read is not seen until this process writes itself.

Concurrency:
    update() and remove() are plain read-modify-write with no file lock
    and no version check. Two devx processes touching the state at the
    same time race and the last writer wins; the loser's change is
    silently dropped. Each CLI invocation is short-lived and sequential,
    so this is accepted rather than locked around.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from devx.core.context import get_state_dir
from devx.core.errors import MissingConfigPathError, PersistenceWriteError
from devx.core.models.stack import StackConfig
from devx.core.models.state import (
    EPOCH,
    BuildStatus,
    DevxState,
    StackState,
    StackStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "state.json"

# Keys restored to epoch when a stored record lacks them entirely
_TIMESTAMP_KEYS = ("lastBuiltAt", "lastStartedAt")

# snake_case names accepted by update()
_UPDATABLE_FIELDS = frozenset(StackState.model_fields)


def default_state_path() -> Path:
    """``$DEVX_STATE_DIR/state.json``, else ``<devx home>/state.json``."""
    return get_state_dir() / DEFAULT_STATE_FILE


def initial_state(config: StackConfig, config_path: Path | str) -> StackState:
    """The record a stack gets the first time devx sees it."""
    return StackState(
        name=config.name,
        config_path=str(config_path),
        build_status=BuildStatus.NOT_BUILT,
        runtime_status=StackStatus.UNKNOWN,
    )


class StateStore:
    """Durable name → StackState store backed by a single JSON file."""

    def __init__(self, path: Path | None = None):
        self._path = path or default_state_path()
        self._cache: DevxState | None = None

    @property
    def path(self) -> Path:
        return self._path

    # ── Whole-document operations ───────────────────────────────

    def load_all(self) -> DevxState:
        """Return every stack's state.

        Never raises: a missing file is an empty state, and an unreadable,
        corrupt, or schema-invalid file is logged and treated as empty.
        """
        if self._cache is not None:
            return self._cache

        self._cache = self._read()
        return self._cache

    def save_all(self, state: DevxState) -> None:
        """Validate and atomically write the whole state, then refresh the cache.

        Raises:
            PersistenceWriteError: If validation or the write fails. The
                cache is left untouched in that case.
        """
        try:
            validated = DevxState.model_validate(state.model_dump())
        except ValidationError as e:
            raise PersistenceWriteError(f"Refusing to save invalid state: {e}") from e

        data = {name: record.to_json_dict() for name, record in validated.root.items()}
        content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

        try:
            self._write_atomic(content)
        except OSError as e:
            logger.error("Failed to save state to %s: %s", self._path, e)
            raise PersistenceWriteError(f"Failed to save state to {self._path}: {e}") from e

        self._cache = validated
        logger.debug("State saved to %s (%d stacks)", self._path, len(validated))

    # ── Per-stack operations ────────────────────────────────────

    def get_one(self, name: str) -> StackState | None:
        """Read one stack's state through load_all()."""
        return self.load_all().get(name)

    def update(self, name: str, /, **changes: Any) -> StackState:
        """Merge ``changes`` onto the stack's record and persist.

        Creates the record when absent, which requires ``config_path``.
        ``name`` always stays the key; ``config_path`` is kept unless
        ``changes`` overrides it.

        Raises:
            MissingConfigPathError: New record without ``config_path``.
            ValueError: Unknown field name in ``changes``.
            PersistenceWriteError: The write failed.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown state field(s): {', '.join(sorted(unknown))}")

        state = self.load_all()
        existing = state.get(name)

        if existing is None and not changes.get("config_path"):
            raise MissingConfigPathError(
                f"Cannot create new state for stack '{name}' without providing 'config_path'."
            )

        if existing is None:
            base: dict[str, Any] = {"name": name}
        else:
            base = existing.model_dump()

        merged = {**base, **changes, "name": name}
        if changes.get("config_path") is None and existing is not None:
            merged["config_path"] = existing.config_path

        record = StackState.model_validate(merged)

        new_state = DevxState.model_validate({**state.root, name: record})
        self.save_all(new_state)
        logger.debug("Updated state for stack: %s", name)
        return record

    def remove(self, name: str) -> bool:
        """Delete a stack's record. Absent names are a no-op (nothing written).

        Returns:
            True if a record was removed.
        """
        state = self.load_all()
        if name not in state:
            logger.debug("No state found for stack '%s' to remove", name)
            return False

        remaining = {k: v for k, v in state.root.items() if k != name}
        self.save_all(DevxState.model_validate(remaining))
        logger.debug("Removed state for stack: %s", name)
        return True

    # ── Helpers ─────────────────────────────────────────────────

    def _read(self) -> DevxState:
        if not self._path.is_file():
            logger.debug("No state file at %s — starting empty", self._path)
            return DevxState()

        try:
            raw = self._path.read_text(encoding="utf-8")
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Cannot read state file %s: %s — starting empty", self._path, e)
            return DevxState()

        if not isinstance(data, dict):
            logger.warning(
                "State file %s is not a JSON object — starting empty", self._path
            )
            return DevxState()

        try:
            state = DevxState.model_validate(
                {name: _restore_timestamps(record) for name, record in data.items()}
            )
        except ValidationError as e:
            logger.warning("Invalid state file %s: %s — starting empty", self._path, e)
            return DevxState()

        logger.debug("Loaded state from %s (%d stacks)", self._path, len(state))
        return state

    def _write_atomic(self, content: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=".state_",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            with open(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            tmp.replace(self._path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise


def _restore_timestamps(record: Any) -> Any:
    """Default absent timestamp keys to epoch; explicit nulls stay null."""
    if not isinstance(record, dict):
        return record
    restored = dict(record)
    for key in _TIMESTAMP_KEYS:
        if key not in restored:
            restored[key] = EPOCH.isoformat()
    return restored
