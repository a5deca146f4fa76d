"""
Configuration loader — reads a stack file into a StackConfig.

This is the primary entry point for loading stack configuration.
It finds the file, parses YAML or JSON, validates against the
Pydantic schema, and returns a typed config plus the absolute path
it came from.

Resolution order for ``load_stack_config(identifier, search_dir)``:
    1. identifier is an existing file (absolute or relative to
       search_dir) → load it; it must be .yml / .yaml / .json
    2. identifier is given but is not a file → treat it as a stack
       name and look up the path recorded by an earlier load
    3. no identifier → walk search_dir and its parents for
       .stack.yml, .stack.yaml, .stack.json (first match wins)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from devx.core.config.metadata import MetadataStore
from devx.core.errors import ConfigInvalidError, ConfigNotFoundError, ConfigParseError
from devx.core.models.stack import StackConfig

logger = logging.getLogger(__name__)

# Default config filenames, in search order
DEFAULT_STACK_FILES = (".stack.yml", ".stack.yaml", ".stack.json")

STACK_FILE_EXTENSIONS = (".yml", ".yaml", ".json")


@dataclass(frozen=True)
class LoadedStack:
    """A validated stack config together with the file it was read from."""

    config: StackConfig
    config_path: Path

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def project_path(self) -> Path:
        """Directory the stack's relative paths are resolved against."""
        return self.config_path.parent


def find_stack_file(start_dir: Path | None = None) -> Path | None:
    """Search for a default stack file starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Absolute path to the first stack file found, or None at the
        filesystem root.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        for filename in DEFAULT_STACK_FILES:
            candidate = current / filename
            if candidate.is_file():
                return candidate
        parent = current.parent
        if parent == current:
            return None  # filesystem root
        current = parent


def parse_stack_file(path: Path) -> StackConfig:
    """Read, parse and validate one stack file.

    Raises:
        ConfigParseError: Unreadable file, bad YAML/JSON, or unknown extension.
        ConfigInvalidError: Content does not satisfy the stack schema.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigParseError(f"Cannot read {path}: {e}", path) from e

    ext = path.suffix.lower()
    try:
        if ext in (".yml", ".yaml"):
            data = yaml.safe_load(raw)
        elif ext == ".json":
            data = json.loads(raw)
        else:
            raise ConfigParseError(
                f"Unsupported stack file extension '{ext}' "
                f"(expected one of {', '.join(STACK_FILE_EXTENSIONS)}): {path}",
                path,
            )
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Invalid YAML in {path}: {e}", path) from e
    except json.JSONDecodeError as e:
        raise ConfigParseError(f"Invalid JSON in {path}: {e}", path) from e

    return validate_stack_data(data, path)


def validate_stack_data(data: Any, path: Path | None = None) -> StackConfig:
    """Validate already-parsed data against the StackConfig schema.

    Raises:
        ConfigInvalidError: With one ``"<field.path>: <message>"`` entry per
            violation.
    """
    where = f" in {path}" if path else ""
    if not isinstance(data, dict):
        raise ConfigInvalidError(
            f"Expected a mapping{where}, got {type(data).__name__}",
            path,
            violations=[f"root: expected a mapping, got {type(data).__name__}"],
        )

    try:
        return StackConfig.model_validate(data)
    except ValidationError as e:
        violations = format_violations(e)
        raise ConfigInvalidError(
            f"Invalid stack configuration{where}: {'; '.join(violations)}",
            path,
            violations=violations,
        ) from e


def format_violations(error: ValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into ``"a.b.c: message"`` strings."""
    violations = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item["loc"]) or "root"
        violations.append(f"{loc}: {item['msg']}")
    return violations


def load_stack_config(
    identifier: str | None = None,
    search_dir: Path | None = None,
    metadata: MetadataStore | None = None,
) -> LoadedStack:
    """Find, load and validate a stack configuration.

    Args:
        identifier: A path to a stack file, or a stack name. None searches
            ``search_dir`` and its parents for a default stack file.
        search_dir: Base directory for relative paths and the upward
            search (default: cwd).
        metadata: Where name → path lookups are read and recorded
            (default: the devx home's metadata directory).

    Returns:
        LoadedStack with the validated config and its absolute path.

    Raises:
        ConfigNotFoundError: Nothing matched.
        ConfigParseError: The file could not be read or parsed.
        ConfigInvalidError: The file failed schema validation.
    """
    search_dir = (search_dir or Path.cwd()).resolve()
    metadata = metadata or MetadataStore()

    path = _resolve_path(identifier, search_dir, metadata)

    logger.debug("Loading stack config from %s", path)
    config = parse_stack_file(path)

    metadata.save(config.name, path)
    logger.info("Loaded stack '%s' with %d services", config.name, len(config.services))
    return LoadedStack(config=config, config_path=path)


def _resolve_path(
    identifier: str | None,
    search_dir: Path,
    metadata: MetadataStore,
) -> Path:
    if identifier is None:
        found = find_stack_file(search_dir)
        if found is None:
            raise ConfigNotFoundError(
                f"Stack configuration file ({' or '.join(DEFAULT_STACK_FILES)}) "
                f"not found in {search_dir} or parent directories."
            )
        return found

    candidate = Path(identifier).expanduser()
    if not candidate.is_absolute():
        candidate = search_dir / candidate

    if candidate.is_file():
        if candidate.suffix.lower() not in STACK_FILE_EXTENSIONS:
            raise ConfigNotFoundError(
                "Specified file is not a valid stack file "
                f"(must be {', '.join(STACK_FILE_EXTENSIONS)}): {identifier}",
                candidate,
            )
        return candidate.resolve()

    # Not a file — treat it as a stack name
    meta = metadata.get(identifier)
    if meta is None:
        raise ConfigNotFoundError(
            f"No stack file at '{identifier}' and no known stack named '{identifier}'."
        )

    stored = Path(meta.config_path)
    if not stored.is_file():
        raise ConfigNotFoundError(
            f"Stack '{identifier}' was last loaded from {stored}, which no longer exists.",
            stored,
        )
    logger.debug("Resolved stack name '%s' to %s", identifier, stored)
    return stored
