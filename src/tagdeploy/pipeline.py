"""Promote-or-rollback release pipeline."""

import logging
import os
from typing import Optional

from packaging.version import InvalidVersion, Version

from .constants import DEFAULT_MAX_WAIT_SECONDS, DEFAULT_POLL_INTERVAL_SECONDS
from .errors import RollbackError
from .errors_catalog import actionable_error
from .models import PipelineStage, PipelineState, ReleaseConfig, RevisionRecord
from .services.notifier import ProgressReporter

logger = logging.getLogger("tagdeploy")


class ReleasePipeline:
    """Checks out a release tag, validates it in a shadow environment and promotes it.

    Stages are reported as ``INIT(0) -> CLONED(1) -> CHECKED_OUT(2) ->
    SHADOW_UP(3) -> SHADOW_HEALTHY(4)`` followed by step 5 with status
    ``done``. Once the baseline revision is captured, any failure rolls the
    working tree and containers back and the failure is raised again. A
    failure during rollback is raised as :class:`RollbackError`.
    """

    def __init__(
        self,
        console,
        revision_manager,
        environment_switcher,
        health_monitor,
        max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ):
        self.console = console
        self.revisions = revision_manager
        self.switcher = environment_switcher
        self.health = health_monitor
        self.max_wait = max_wait
        self.poll_interval = poll_interval

    def run(
        self,
        repository: str,
        tag: str,
        config: ReleaseConfig,
        reporter: Optional[ProgressReporter] = None,
    ) -> PipelineState:
        run = _Run(self, repository, tag, config, reporter or ProgressReporter())
        return run.execute()


class _Run:
    """State of one pipeline execution."""

    def __init__(self, pipeline: ReleasePipeline, repository: str, tag: str, config: ReleaseConfig, reporter):
        self.pipeline = pipeline
        self.repository = repository
        self.tag = tag
        self.config = config
        self.reporter = reporter
        self.state = PipelineState()

        self.working_path = config.working_path
        self.manifest_path = os.path.join(self.working_path, config.manifest_file)
        self.shadow_path: Optional[str] = None
        self.shadow_project = pipeline.switcher.shadow_project_name(self.manifest_path)
        self.production_touched = False
        self.record: Optional[RevisionRecord] = None

    def advance(self, stage: PipelineStage):
        self.state.stage = stage
        self.state.status = "pending"
        self.pipeline.console.print(f"[bold blue]{self.repository}: {stage.name}[/bold blue]")
        self.reporter.report(int(stage))

    def fail(self, exc: BaseException):
        self.state.status = "failed"
        self.state.error = str(exc)
        self.reporter.report(int(self.state.stage), "failed", str(exc))

    def execute(self) -> PipelineState:
        revisions = self.pipeline.revisions
        self.advance(PipelineStage.INIT)

        try:
            revisions.ensure_cloned(self.repository, self.working_path, self.config.clone_url)
            self.advance(PipelineStage.CLONED)

            previous_revision, previous_tag = revisions.capture_baseline(
                self.working_path, self.config.version_file
            )
        except Exception as exc:
            self.fail(exc)
            raise

        self.record = RevisionRecord(
            previous_revision=previous_revision,
            previous_version_tag=previous_tag,
            new_version_tag=self.tag,
        )
        self._warn_on_downgrade()

        try:
            self.promote()
        except Exception as exc:
            logger.error("[%s] Deployment of %s failed, rolling back: %s", self.repository, self.tag, exc)
            self.fail(exc)
            self.rollback(exc)
            raise

        self.state.stage = PipelineStage.PROMOTED
        self.state.status = "done"
        self.reporter.report(int(PipelineStage.PROMOTED), "done")
        self.pipeline.console.print(f"[green]Production deployment succeeded for {self.tag}.[/green]")
        return self.state

    def promote(self):
        pipeline = self.pipeline
        switcher = pipeline.switcher

        pipeline.revisions.checkout_tag(self.working_path, self.tag, self.config.version_file)
        self.advance(PipelineStage.CHECKED_OUT)

        self.shadow_path = switcher.materialize_shadow(self.manifest_path)
        switcher.up(self.shadow_path, self.shadow_project)
        self.advance(PipelineStage.SHADOW_UP)

        pipeline.health.wait_healthy(
            self.shadow_path, pipeline.max_wait, pipeline.poll_interval, self.shadow_project
        )
        self.advance(PipelineStage.SHADOW_HEALTHY)
        logger.info("[%s] Shadow deployment succeeded for %s", self.repository, self.tag)

        switcher.down(self.shadow_path, self.shadow_project)
        switcher.discard_shadow(self.shadow_path)
        self.shadow_path = None

        self.production_touched = True
        switcher.up(self.manifest_path)
        pipeline.health.wait_healthy(self.manifest_path, pipeline.max_wait, pipeline.poll_interval)

    def rollback(self, original: BaseException):
        """Runs every rollback step even when an earlier one fails.

        The first step failure is raised as the cause of :class:`RollbackError`.
        """
        pipeline = self.pipeline
        switcher = pipeline.switcher
        failures = []

        if self.production_touched:
            self._attempt(failures, switcher.down, self.manifest_path)
        if self.shadow_path:
            if os.path.exists(self.shadow_path):
                self._attempt(failures, switcher.down, self.shadow_path, self.shadow_project)
            self._attempt(failures, switcher.discard_shadow, self.shadow_path)
            self.shadow_path = None

        restored = self._attempt(
            failures, pipeline.revisions.restore_revision, self.working_path, self.record, self.config.version_file
        )
        if self.production_touched and restored:
            # The previous release was replaced; start it again from the restored tree.
            self._attempt(failures, switcher.up, self.manifest_path)

        if failures:
            message = actionable_error("rollback_failed", repository=self.repository, error=str(original))
            logger.critical("[%s] %s (%s)", self.repository, message, failures[0])
            error = RollbackError(message, original=original)
            self.fail(error)
            raise error from failures[0]

        logger.warning(
            "[%s] Rolled back to %s (release %s)",
            self.repository,
            self.record.previous_revision,
            self.record.previous_version_tag or "<none>",
        )

    def _attempt(self, failures, step, *args) -> bool:
        try:
            step(*args)
        except Exception as exc:
            logger.error("[%s] Rollback step %s failed: %s", self.repository, step.__name__, exc)
            failures.append(exc)
            return False
        return True

    def _warn_on_downgrade(self):
        previous = self.record.previous_version_tag
        if not previous:
            return
        try:
            is_older = Version(self.tag) < Version(previous)
        except InvalidVersion:
            return
        if is_older:
            logger.warning("[%s] Release %s is older than the deployed %s", self.repository, self.tag, previous)
