"""
Podman engine — drives a stack's containers straight through the runtime.

Containers (and volumes and networks) are matched by the compose project
label that the podman-compose builder sets from the stack name:

    status    podman ps -a --filter label=com.docker.compose.project=<stack> --format json
    start     podman start <ids>
    stop      podman stop <ids>
    destroy   podman rm -f -v <ids>   (+ labelled networks, and volumes if asked)
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any

from devx.adapters.base import EnginePlugin, PortBinding, ServiceStatus, StackStatusInfo
from devx.adapters.engines.platform import PlatformInfo, get_platform_info
from devx.adapters.shell.command import CommandError, run_command
from devx.core.models.stack import StackConfig
from devx.core.models.state import StackStatus

logger = logging.getLogger(__name__)

PROJECT_LABEL = "com.docker.compose.project"
SERVICE_LABEL = "com.docker.compose.service"

# podman container State → service status
_STATE_MAP: dict[str, StackStatus] = {
    "running": StackStatus.RUNNING,
    "healthy": StackStatus.RUNNING,
    "exited": StackStatus.STOPPED,
    "stopped": StackStatus.STOPPED,
    "created": StackStatus.STOPPED,
    "configured": StackStatus.STOPPED,
    "initialized": StackStatus.STARTING,
    "paused": StackStatus.STOPPED,
    "restarting": StackStatus.STARTING,
    "stopping": StackStatus.STOPPING,
    "removing": StackStatus.STOPPING,
    "dead": StackStatus.ERROR,
}


def map_container_state(state: str, exit_code: int | None = None) -> StackStatus:
    """Map a podman container state to a service status.

    An exited container with a non-zero exit code counts as an error.
    """
    normalized = state.strip().lower()
    status = _STATE_MAP.get(normalized, StackStatus.UNKNOWN)
    if status is StackStatus.STOPPED and normalized == "exited" and exit_code:
        return StackStatus.ERROR
    return status


def _ports(container: dict[str, Any]) -> list[PortBinding]:
    bindings = []
    for port in container.get("Ports") or []:
        host = port.get("host_port") or port.get("hostPort")
        target = port.get("container_port") or port.get("containerPort")
        if host and target:
            bindings.append(
                PortBinding(
                    host_port=int(host),
                    container_port=int(target),
                    protocol=port.get("protocol") or "tcp",
                )
            )
    return bindings


class PodmanEngine(EnginePlugin):
    """Engine backed by the podman CLI."""

    NAME = "podman"

    def __init__(self, binary: str = "podman", timeout: int = 120):
        self._binary = binary
        self._timeout = timeout
        self._platform: PlatformInfo | None = None

    @property
    def name(self) -> str:
        return self.NAME

    @property
    def platform(self) -> PlatformInfo:
        """Host platform details, detected on first use."""
        if self._platform is None:
            self._platform = get_platform_info()
        return self._platform

    def is_available(self) -> bool:
        if shutil.which(self._binary) is None:
            return False
        try:
            run_command(self._binary, ["version", "--format", "json"], timeout=self._timeout)
        except CommandError:
            return False
        return True

    def start(self, config: StackConfig, project_path: Path) -> None:
        ids = self._labelled("ps", config.name, project_path)
        if not ids:
            raise CommandError(
                f"No containers found for stack '{config.name}'; build it first"
            )
        logger.info("Starting %d containers for '%s'", len(ids), config.name)
        self._podman(["start", *ids], project_path)

    def stop(self, config: StackConfig, project_path: Path) -> None:
        ids = self._labelled("ps", config.name, project_path)
        if not ids:
            logger.warning("No containers found for '%s' — nothing to stop", config.name)
            return
        logger.info("Stopping %d containers for '%s'", len(ids), config.name)
        self._podman(["stop", *ids], project_path)

    def destroy(
        self,
        config: StackConfig,
        project_path: Path,
        remove_volumes: bool = False,
    ) -> None:
        ids = self._labelled("ps", config.name, project_path)
        if ids:
            logger.info("Removing %d containers for '%s'", len(ids), config.name)
            self._podman(["rm", "-f", "-v", *ids], project_path)
        else:
            logger.warning("No containers found for '%s' — nothing to remove", config.name)

        networks = self._labelled("network", config.name, project_path)
        if networks:
            self._podman(["network", "rm", "-f", *networks], project_path)

        if remove_volumes:
            volumes = self._labelled("volume", config.name, project_path)
            if volumes:
                logger.info("Removing %d volumes for '%s'", len(volumes), config.name)
                self._podman(["volume", "rm", "-f", *volumes], project_path)

    def get_stack_status(self, stack_name: str, project_path: Path) -> StackStatusInfo:
        output = self._podman(
            ["ps", "-a", "--filter", f"label={PROJECT_LABEL}={stack_name}", "--format", "json"],
            project_path,
        )
        containers = json.loads(output) if output else []
        return self.parse_containers(containers)

    @staticmethod
    def parse_containers(containers: list[dict[str, Any]]) -> StackStatusInfo:
        """Turn ``podman ps --format json`` output into a per-service report.

        The stack-level ``status`` is left UNKNOWN; the orchestrator
        aggregates it from the services.
        """
        services: dict[str, ServiceStatus] = {}
        for container in containers:
            labels = container.get("Labels") or {}
            names = container.get("Names") or [container.get("Id", "")[:12]]
            service = labels.get(SERVICE_LABEL) or names[0]
            state = str(container.get("State", ""))
            services[service] = ServiceStatus(
                status=map_container_state(state, container.get("ExitCode")),
                raw_status=str(container.get("Status") or state),
                ports=_ports(container),
            )
        return StackStatusInfo(services=services)

    # ── Helpers ─────────────────────────────────────────────────

    def _podman(self, args: list[str], project_path: Path | None = None) -> str:
        return run_command(self._binary, args, cwd=project_path, timeout=self._timeout)

    def _labelled(self, kind: str, stack_name: str, project_path: Path) -> list[str]:
        """IDs (or names) of the stack's containers, networks or volumes."""
        if kind == "ps":
            args = ["ps", "-a", "-q"]
        else:
            args = [kind, "ls", "-q"]
        output = self._podman(
            [*args, "--filter", f"label={PROJECT_LABEL}={stack_name}"], project_path
        )
        return output.split()
