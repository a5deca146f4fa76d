"""
Stack metadata — remembers where each named stack's config lives.

Every successful config load records ``name → config path`` under
``<devx home>/stacks/<name>.json``. That is what lets ``devx start demo``
work from any directory once ``demo`` has been loaded by path once.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from devx.core.context import get_metadata_dir
from devx.core.errors import PersistenceWriteError
from devx.core.models.stack import STACK_NAME_PATTERN

logger = logging.getLogger(__name__)

MetadataStatus = Literal[
    "loaded", "starting", "running", "stopping", "stopped", "error", "unknown"
]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class StackMetadata(BaseModel):
    """Metadata stored per stack name."""

    config_path: str
    status: MetadataStatus = "loaded"
    last_status_update: str = Field(default_factory=_now_iso)
    error_message: str | None = None


class MetadataStore:
    """One JSON file per stack name in a metadata directory."""

    def __init__(self, root: Path | None = None):
        self._root = root or get_metadata_dir()

    @property
    def root(self) -> Path:
        return self._root

    def _file(self, name: str) -> Path:
        return self._root / f"{name}.json"

    def save(
        self,
        name: str,
        config_path: Path | str,
        status: MetadataStatus = "loaded",
    ) -> StackMetadata:
        """Create or overwrite the metadata for ``name``."""
        meta = StackMetadata(config_path=str(config_path), status=status)
        self._write(name, meta)
        logger.debug("Saved metadata for stack '%s' → %s", name, config_path)
        return meta

    def get(self, name: str) -> StackMetadata | None:
        """Stored metadata, or None if absent or unreadable."""
        if not re.fullmatch(STACK_NAME_PATTERN, name):
            return None
        path = self._file(name)
        if not path.is_file():
            return None
        try:
            return StackMetadata.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable metadata for stack '%s' (%s): %s", name, path, e)
            return None

    def list_names(self) -> list[str]:
        """Names of every stack with stored metadata, sorted."""
        if not self._root.is_dir():
            return []
        return sorted(p.stem for p in self._root.glob("*.json") if p.is_file())

    def update_status(
        self,
        name: str,
        status: MetadataStatus,
        error_message: str | None = None,
    ) -> StackMetadata | None:
        """Set the status on existing metadata. Returns None if there is none."""
        meta = self.get(name)
        if meta is None:
            return None
        meta = meta.model_copy(
            update={
                "status": status,
                "error_message": error_message,
                "last_status_update": _now_iso(),
            }
        )
        self._write(name, meta)
        return meta

    def remove(self, name: str) -> bool:
        """Delete a stack's metadata. Absent names are a no-op."""
        path = self._file(name)
        if not path.is_file():
            return False
        path.unlink()
        logger.debug("Removed metadata for stack '%s'", name)
        return True

    def _write(self, name: str, meta: StackMetadata) -> None:
        content = json.dumps(meta.model_dump(mode="json"), indent=2) + "\n"
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            self._file(name).write_text(content, encoding="utf-8")
        except OSError as e:
            raise PersistenceWriteError(f"Failed to save metadata for stack '{name}': {e}") from e
