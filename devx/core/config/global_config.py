"""
Global configuration — process-wide defaults for plugin selection.

Read from ``<devx home>/config.json``. Environment variables override
the file, the file overrides built-in defaults:

    DEVX_DEFAULT_BUILDER  >  config.json "defaultBuilder"  >  "podman-compose"
    DEVX_DEFAULT_ENGINE   >  config.json "defaultEngine"   >  "podman"

An explicit empty value (``""`` or ``null``) means "no default"; the
plugin resolver then refuses stacks that don't name a plugin.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from devx.core.context import get_devx_home

logger = logging.getLogger(__name__)

GLOBAL_CONFIG_FILE = "config.json"

ENV_DEFAULT_BUILDER = "DEVX_DEFAULT_BUILDER"
ENV_DEFAULT_ENGINE = "DEVX_DEFAULT_ENGINE"


class GlobalConfig(BaseModel):
    """Global defaults applied to stacks that don't override them."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    default_builder: str | None = "podman-compose"
    default_engine: str | None = "podman"

    @field_validator("default_builder", "default_engine")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


def default_global_config_path() -> Path:
    return get_devx_home() / GLOBAL_CONFIG_FILE


def load_global_config(path: Path | None = None) -> GlobalConfig:
    """Load global defaults (file + env). Never raises on a bad file.

    Args:
        path: Explicit config.json path (default: devx home).
    """
    path = path or default_global_config_path()
    data: dict = {}

    if path.is_file():
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                data = loaded
            else:
                logger.warning("Global config %s is not a JSON object — using defaults", path)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Cannot read global config %s: %s — using defaults", path, e)

    for env_name, field in (
        (ENV_DEFAULT_BUILDER, "defaultBuilder"),
        (ENV_DEFAULT_ENGINE, "defaultEngine"),
    ):
        if env_name in os.environ:
            data[field] = os.environ[env_name]

    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as e:
        logger.warning("Invalid global config %s: %s — using defaults", path, e)
        return GlobalConfig()
