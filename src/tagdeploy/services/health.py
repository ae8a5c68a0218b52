"""Container health polling for shadow and production environments."""

import time
from typing import List, Optional

from tagdeploy.errors import DeployError, HealthCheckTimeout
from tagdeploy.errors_catalog import actionable_error
from tagdeploy.models import ContainerStatus


class HealthMonitor:
    """Polls every container of an environment until all of them are healthy.

    A container counts as healthy when it is running and either defines no
    health check or reports ``healthy``. Exited containers and failed status
    queries fail the current tick only; polling continues until the deadline.
    """

    def __init__(self, logger, console, environment_switcher):
        self.logger = logger
        self.console = console
        self.switcher = environment_switcher

    @staticmethod
    def all_healthy(containers: List[ContainerStatus]) -> bool:
        return bool(containers) and all(container.is_healthy for container in containers)

    def wait_healthy(
        self,
        manifest_path: str,
        max_wait: float,
        poll_interval: float,
        project_name: Optional[str] = None,
    ):
        self.console.print("[yellow]Waiting for containers to become healthy...[/yellow]")
        deadline = time.monotonic() + max_wait

        while True:
            try:
                containers = self.switcher.list_containers(manifest_path, project_name)
            except DeployError as exc:
                # A failed status query counts as an unhealthy tick.
                self.logger.warning("Could not query container status: %s", exc)
                containers = []
            for container in containers:
                self.logger.debug(
                    "Container %s: State=%s, Health=%s",
                    container.name,
                    container.state,
                    container.health or "N/A",
                )
                if container.state == "exited":
                    self.logger.debug("Container %s exited unexpectedly.", container.name)

            if self.all_healthy(containers):
                self.console.print("[green]All containers are healthy.[/green]")
                return

            if not containers:
                self.logger.debug("No containers reported for %s", manifest_path)

            if time.monotonic() >= deadline:
                break

            self.logger.debug("Some containers are not healthy yet. Waiting %.1fs...", poll_interval)
            time.sleep(poll_interval)

        raise HealthCheckTimeout(actionable_error("health_timeout", seconds=f"{max_wait:g}"))
