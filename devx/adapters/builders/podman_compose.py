"""
podman-compose builder — compose file generation and image builds.

Translates a StackConfig into a compose file at
``<project>/.devx/dist/<stack>.podman-compose.yaml`` and builds the
stack with the podman-compose CLI:

    podman-compose -p <stack> -f <file> build
    podman-compose -p <stack> -f <file> up --no-start

The containers are created but left stopped; starting, stopping and
removing them is the podman engine's job.

``-p <stack>`` pins the compose project name, so containers carry the
``com.docker.compose.project=<stack>`` label the podman engine filters on.

Builder options (``builder.options`` in the stack file):
    no_cache (bool)   pass --no-cache to build
    pull (bool)       pass --pull to build
    timeout (int)     per-command timeout in seconds (default: 600)
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any

import yaml

from devx.adapters.base import BuilderPlugin, BuildResult
from devx.adapters.shell.command import run_command
from devx.core.models.stack import BuildConfig, StackConfig

logger = logging.getLogger(__name__)

DEFAULT_COMPOSE_VERSION = "3.8"
DIST_DIR = Path(".devx") / "dist"


def compose_file_path(project_path: Path, stack_name: str) -> Path:
    """Where the generated compose file for a stack lives."""
    return (project_path / DIST_DIR / f"{stack_name}.podman-compose.yaml").resolve()


def render_compose(config: StackConfig, project_path: Path) -> dict[str, Any]:
    """Build the compose document for a stack (no I/O)."""
    services: dict[str, Any] = {}
    for name, service in config.services.items():
        svc: dict[str, Any] = {}
        if service.image:
            svc["image"] = service.image
        if isinstance(service.build, BuildConfig):
            build = service.build.model_dump(exclude_none=True)
            build["context"] = str((project_path / service.build.context).resolve())
            svc["build"] = build
        elif service.build:
            svc["build"] = str((project_path / service.build).resolve())
        for key in (
            "ports",
            "volumes",
            "environment",
            "depends_on",
            "command",
            "entrypoint",
            "networks",
        ):
            value = getattr(service, key)
            if value:
                svc[key] = value
        services[name] = svc

    compose: dict[str, Any] = {
        "version": config.version or DEFAULT_COMPOSE_VERSION,
        "services": services,
    }
    if config.volumes:
        compose["volumes"] = {
            k: v.model_dump(exclude_none=True) or None for k, v in config.volumes.items()
        }
    if config.networks:
        compose["networks"] = {
            k: v.model_dump(exclude_none=True) or None for k, v in config.networks.items()
        }
    return compose


class PodmanComposeBuilder(BuilderPlugin):
    """Builder backed by the podman-compose CLI."""

    NAME = "podman-compose"

    def __init__(self, binary: str = "podman-compose", timeout: int = 600):
        self._binary = binary
        self._timeout = timeout

    @property
    def name(self) -> str:
        return self.NAME

    def is_available(self) -> bool:
        return shutil.which(self._binary) is not None

    def generate_config(self, config: StackConfig, project_path: Path) -> Path:
        path = compose_file_path(project_path, config.name)
        content = yaml.safe_dump(
            render_compose(config, project_path),
            sort_keys=False,
            default_flow_style=False,
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.info("Generated podman-compose file: %s", path)
        return path

    def build(
        self,
        config: StackConfig,
        project_path: Path,
        options: dict[str, Any] | None = None,
    ) -> BuildResult:
        options = options or {}
        compose_file = self.generate_config(config, project_path)

        args = ["build"]
        if options.get("no_cache"):
            args.append("--no-cache")
        if options.get("pull"):
            args.append("--pull")

        timeout = int(options.get("timeout", self._timeout))

        logger.info("Building images for '%s' using podman-compose", config.name)
        self._compose(config, compose_file, args, project_path, timeout=timeout)

        # Create (but don't start) containers so the engine can drive them
        logger.info("Creating containers for '%s'", config.name)
        self._compose(config, compose_file, ["up", "--no-start"], project_path, timeout=timeout)

        return BuildResult(manifest_path=str(compose_file))

    # ── Helpers ─────────────────────────────────────────────────

    def _compose(
        self,
        config: StackConfig,
        compose_file: Path,
        args: list[str],
        project_path: Path,
        timeout: int | None = None,
    ) -> str:
        return run_command(
            self._binary,
            ["-p", config.name, "-f", str(compose_file), *args],
            cwd=project_path,
            timeout=timeout or self._timeout,
        )
