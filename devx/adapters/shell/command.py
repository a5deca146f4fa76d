"""
Shell command runner — execute an external binary and capture output.

This is the one place plugins shell out. Every call carries a timeout
so a hung podman/podman-compose process fails the delegate call instead
of hanging the whole orchestrator.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300


class CommandError(RuntimeError):
    """An external command failed, timed out, or could not be started."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


def run_command(
    cmd: str,
    args: list[str],
    cwd: Path | None = None,
    timeout: int = DEFAULT_TIMEOUT,
) -> str:
    """Run ``cmd args...`` and return its stripped stdout.

    Raises:
        CommandError: Non-zero exit, timeout, or missing executable.
    """
    command = [cmd, *args]
    logger.debug("Executing: %s%s", " ".join(command), f" in {cwd}" if cwd else "")

    try:
        result = subprocess.run(
            command,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise CommandError(f'Command "{cmd}" not found') from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(f'Command "{cmd}" timed out after {timeout}s') from e

    if result.returncode != 0:
        detail = (result.stderr or result.stdout).strip()
        message = f'Command "{cmd}" failed (exit code {result.returncode}): {detail}'
        logger.error("%s", message)
        raise CommandError(
            message,
            exit_code=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    return result.stdout.strip()
