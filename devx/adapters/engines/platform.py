"""
Platform detection for the podman engine.

Podman runs natively on Linux (rootless when user namespaces are
enabled), needs a VM (``podman machine``) on macOS, and WSL 2 on
Windows.
"""

from __future__ import annotations

import logging
import platform as _platform
import sys
from pathlib import Path

from pydantic import BaseModel

from devx.adapters.shell.command import CommandError, run_command

logger = logging.getLogger(__name__)

_USERNS_FILE = Path("/proc/sys/user/max_user_namespaces")


class PlatformInfo(BaseModel):
    platform: str
    arch: str
    supports_rootless: bool = False
    requires_vm: bool = False
    requires_wsl: bool = False


def check_linux_rootless_support(userns_file: Path = _USERNS_FILE) -> bool:
    """Whether user namespaces are enabled."""
    try:
        return int(userns_file.read_text().strip()) > 0
    except (OSError, ValueError):
        return False


def check_wsl_rootless_support() -> bool:
    """Whether WSL 2 is installed."""
    try:
        output = run_command("wsl", ["--list", "--verbose"], timeout=15)
    except CommandError:
        return False
    # wsl.exe writes UTF-16; stray NULs survive text decoding
    return "2" in output.replace("\x00", "").split()


def get_platform_info(system: str | None = None) -> PlatformInfo:
    """Describe the host platform."""
    system = system or sys.platform
    info = PlatformInfo(platform=system, arch=_platform.machine())

    if system.startswith("linux"):
        info.supports_rootless = check_linux_rootless_support()
    elif system == "darwin":
        info.requires_vm = True
    elif system in ("win32", "cygwin"):
        info.requires_wsl = True
        info.supports_rootless = check_wsl_rootless_support()

    logger.debug("Platform: %s", info)
    return info
