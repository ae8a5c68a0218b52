import logging
import os
import subprocess
from typing import Optional

from rich.console import Console
from rich.markup import escape

from .constants import DEFAULT_MAX_WAIT_SECONDS, DEFAULT_POLL_INTERVAL_SECONDS
from .errors import DeployError, RollbackError
from .models import PipelineState, ReleaseTrigger
from .pipeline import ReleasePipeline
from .services.command_runner import CommandRunner
from .services.docker_runtime import EnvironmentSwitcher
from .services.filesystem import FileSystemService
from .services.health import HealthMonitor
from .services.locks import RepositoryLocks
from .services.notifier import create_step_reporter
from .services.revision import RevisionManager

console = Console()
logger = logging.getLogger("tagdeploy")


class TagDeployer:
    """Runs release pipelines, one at a time per repository."""

    def __init__(
        self,
        max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        discord_webhook_url: Optional[str] = None,
        reporter_factory=create_step_reporter,
    ):
        self.discord_webhook_url = discord_webhook_url or os.environ.get("DISCORD_WEBHOOK_URL")
        self.reporter_factory = reporter_factory

        self.command_runner = CommandRunner(logger=logger)
        self.filesystem_service = FileSystemService(logger=logger)
        self.revision_manager = RevisionManager(
            logger=logger,
            console=console,
            command_runner=self.command_runner,
            filesystem_service=self.filesystem_service,
        )
        self.environment_switcher = EnvironmentSwitcher(
            logger=logger,
            console=console,
            command_runner=self.command_runner,
            filesystem_service=self.filesystem_service,
            subprocess_module=subprocess,
        )
        self.health_monitor = HealthMonitor(
            logger=logger,
            console=console,
            environment_switcher=self.environment_switcher,
        )
        self.pipeline = ReleasePipeline(
            console=console,
            revision_manager=self.revision_manager,
            environment_switcher=self.environment_switcher,
            health_monitor=self.health_monitor,
            max_wait=max_wait,
            poll_interval=poll_interval,
        )
        self.locks = RepositoryLocks(logger=logger)

    def deploy(self, trigger: ReleaseTrigger) -> PipelineState:
        """Deploys a release, raising the pipeline's failure to the caller."""
        with self.locks.hold(trigger.repository):
            logger.info("[%s] Release %s received, deploying...", trigger.repository, trigger.tag)
            reporter = self.reporter_factory(trigger.repository, trigger.tag, self.discord_webhook_url)
            state = self.pipeline.run(trigger.repository, trigger.tag, trigger.config, reporter)
            logger.info("[%s] Deployment finished for tag %s", trigger.repository, trigger.tag)
            return state

    def handle_trigger(self, trigger: ReleaseTrigger) -> bool:
        """Background entry point: deploys and logs the outcome instead of raising."""
        try:
            self.deploy(trigger)
            return True
        except RollbackError as exc:
            console.print(f"[bold red]Rollback failed:[/bold red] {escape(str(exc))}")
            logger.critical("[%s] Manual intervention required: %s", trigger.repository, exc)
        except DeployError as exc:
            console.print(f"[bold red]Deployment failed:[/bold red] {escape(str(exc))}")
            logger.error("[%s] Deployment failed: %s", trigger.repository, exc)
        except Exception:
            logger.exception("[%s] Unexpected error during deployment", trigger.repository)
        return False
