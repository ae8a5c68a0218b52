"""Docker Compose environment services for tagdeploy."""

import json
import os
import re
import subprocess
from typing import List, Optional

from tagdeploy.constants import SHADOW_PROJECT_SUFFIX, SHADOW_SUFFIX
from tagdeploy.errors import DeployError
from tagdeploy.models import ContainerStatus

RESTART_POLICY_PATTERN = re.compile(
    r"""restart:[ \t]*(["']?)(?:always|on-failure(?:[ \t]*:[ \t]*\d+)?)\1(?=[ \t\r]*(?:#|$))""",
    re.MULTILINE,
)


class EnvironmentSwitcher:
    """Manages shadow and production compose environments of a working tree."""

    def __init__(self, logger, console, command_runner, filesystem_service, subprocess_module=subprocess):
        self.logger = logger
        self.console = console
        self.runner = command_runner
        self.filesystem = filesystem_service
        self.subprocess = subprocess_module
        self._compose_cmd: Optional[List[str]] = None

    @property
    def compose_cmd(self) -> List[str]:
        if self._compose_cmd is None:
            self._compose_cmd = self.get_docker_compose_cmd()
        return self._compose_cmd

    def get_docker_compose_cmd(self) -> List[str]:
        try:
            self.subprocess.run(["docker", "compose", "version"], check=True, capture_output=True)
            return ["docker", "compose"]
        except (self.subprocess.CalledProcessError, FileNotFoundError):
            try:
                self.subprocess.run(["docker-compose", "--version"], check=True, capture_output=True)
                return ["docker-compose"]
            except (self.subprocess.CalledProcessError, FileNotFoundError):
                raise DeployError(
                    "Docker Compose is not available. Install Docker Compose v2 (`docker compose`) "
                    "or v1 (`docker-compose`) and try again."
                )

    @staticmethod
    def shadow_manifest_path(manifest_path: str) -> str:
        stem, ext = os.path.splitext(manifest_path)
        return f"{stem}{SHADOW_SUFFIX}{ext or '.yml'}"

    @staticmethod
    def shadow_project_name(manifest_path: str) -> str:
        directory = os.path.basename(os.path.dirname(os.path.abspath(manifest_path)))
        return f"{directory}{SHADOW_PROJECT_SUFFIX}".lower()

    @staticmethod
    def disable_restart_policies(content: str) -> str:
        return RESTART_POLICY_PATTERN.sub('restart: "no"', content)

    def materialize_shadow(self, manifest_path: str) -> str:
        shadow_path = self.shadow_manifest_path(manifest_path)
        content = self.filesystem.read_text(manifest_path)
        self.filesystem.write_text(shadow_path, self.disable_restart_policies(content))
        self.logger.info("Created shadow manifest %s with restart policies disabled", shadow_path)
        return shadow_path

    def discard_shadow(self, shadow_path: str):
        if self.filesystem.remove_file(shadow_path):
            self.logger.info("Removed shadow manifest %s", shadow_path)

    def up(self, manifest_path: str, project_name: Optional[str] = None):
        self.console.print(f"[blue]Starting {os.path.basename(manifest_path)}...[/blue]")
        self.runner.run(
            self._compose_args(manifest_path, project_name) + ["up", "-d", "--build"],
            cwd=os.path.dirname(manifest_path) or None,
        )

    def down(self, manifest_path: str, project_name: Optional[str] = None):
        if not os.path.exists(manifest_path):
            self.logger.debug("Manifest %s is gone; nothing to stop", manifest_path)
            return
        self.console.print(f"[dim]Stopping {os.path.basename(manifest_path)}...[/dim]")
        self.runner.run(
            self._compose_args(manifest_path, project_name) + ["down"],
            cwd=os.path.dirname(manifest_path) or None,
        )

    def list_containers(self, manifest_path: str, project_name: Optional[str] = None) -> List[ContainerStatus]:
        raw = self.runner.output(
            self._compose_args(manifest_path, project_name) + ["ps", "--all", "--format", "json"],
            cwd=os.path.dirname(manifest_path) or None,
        )
        return self.parse_container_statuses(raw)

    @staticmethod
    def parse_container_statuses(raw: str) -> List[ContainerStatus]:
        raw = raw.strip()
        if not raw:
            return []

        # Compose < 2.21 prints one JSON array, newer releases one object per line.
        try:
            if raw.startswith("["):
                entries = json.loads(raw)
            else:
                entries = [json.loads(line) for line in raw.splitlines() if line.strip()]
        except json.JSONDecodeError as exc:
            raise DeployError(f"Unexpected `compose ps` output: {exc}") from exc

        return [
            ContainerStatus(
                name=entry.get("Name") or entry.get("Service") or "?",
                state=(entry.get("State") or "").lower(),
                health=(entry.get("Health") or "").lower() or None,
            )
            for entry in entries
        ]

    def _compose_args(self, manifest_path: str, project_name: Optional[str]) -> List[str]:
        args = self.compose_cmd + ["-f", manifest_path]
        if project_name:
            args += ["-p", project_name]
        return args
