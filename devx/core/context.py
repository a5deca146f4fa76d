"""
DevX context — where this process keeps its files.

Everything devx persists lives under one home directory:

    <home>/config.json       global defaults (builder / engine)
    <home>/state.json        per-stack lifecycle state
    <home>/stacks/           name → config path metadata
    <home>/global-stacks/    always-on stack definitions

The home is resolved once per lookup:

    set_devx_home()  >  DEVX_HOME env var  >  ~/.devx

Design notes:
    - Module-level singleton (not a class), like the rest of the context.
    - The CLI and tests call set_devx_home(); library callers usually
      leave it unset and get the env/default resolution.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

ENV_HOME = "DEVX_HOME"
ENV_STATE_DIR = "DEVX_STATE_DIR"

_devx_home: Optional[Path] = None


def set_devx_home(home: Path | None) -> None:
    """Pin the devx home for the current process (None = back to env/default)."""
    global _devx_home
    _devx_home = home


def get_devx_home() -> Path:
    """Return the devx home directory (not created here)."""
    if _devx_home is not None:
        return _devx_home
    env = os.environ.get(ENV_HOME)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".devx"


def get_state_dir() -> Path:
    """Directory holding state.json — DEVX_STATE_DIR wins over the home."""
    env = os.environ.get(ENV_STATE_DIR)
    if env:
        return Path(env).expanduser()
    return get_devx_home()


def get_metadata_dir() -> Path:
    return get_devx_home() / "stacks"


def get_global_stacks_dir() -> Path:
    return get_devx_home() / "global-stacks"
