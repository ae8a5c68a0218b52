import subprocess

import pytest

from tagdeploy.errors import (
    CheckoutError,
    CloneError,
    CommandExecutionError,
    HealthCheckTimeout,
    RollbackError,
)
from tagdeploy.models import PipelineStage, ReleaseConfig
from tagdeploy.pipeline import ReleasePipeline
from tagdeploy.services.docker_runtime import EnvironmentSwitcher
from tagdeploy.services.filesystem import FileSystemService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeSubprocess:
    CalledProcessError = subprocess.CalledProcessError

    def run(self, cmd, check=False, capture_output=False):
        return subprocess.CompletedProcess(cmd, 0)


class RecordingRunner:
    def __init__(self):
        self.calls = []

    def run(self, cmd, cwd=None, env=None, check=True, capture_output=False, timeout=None):
        self.calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def output(self, cmd, cwd=None):
        return self.run(cmd, cwd=cwd).stdout


class FakeRevisions:
    """In-memory working tree: HEAD revision plus the recorded release."""

    def __init__(self, clone_error=None, restore_error=None):
        self.head = "abc123"
        self.release = "v1.0.0"
        self.tags = {"v2.0.0": "def456"}
        self.clone_error = clone_error
        self.restore_error = restore_error
        self.restored = 0

    def ensure_cloned(self, repository, working_path, clone_url=None):
        if self.clone_error:
            raise self.clone_error

    def capture_baseline(self, working_path, version_file):
        return self.head, self.release

    def checkout_tag(self, working_path, tag, version_file):
        if tag not in self.tags:
            raise CheckoutError(f"Release tag {tag} does not exist")
        self.head = self.tags[tag]
        self.release = tag

    def restore_revision(self, working_path, record, version_file):
        if self.restore_error:
            raise self.restore_error
        self.restored += 1
        self.head = record.previous_revision
        if record.previous_version_tag:
            self.release = record.previous_version_tag


class FakeHealth:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.checked = []

    def wait_healthy(self, manifest_path, max_wait, poll_interval, project_name=None):
        kind = "shadow" if project_name else "production"
        self.checked.append(kind)
        if kind in self.failing:
            raise HealthCheckTimeout(f"Containers did not become healthy within {max_wait:g}s.")


class RecordingReporter:
    def __init__(self):
        self.events = []

    def report(self, step_index, status=None, message=None):
        self.events.append((step_index, status, message))


@pytest.fixture
def working_tree(tmp_path):
    tree = tmp_path / "service"
    tree.mkdir()
    (tree / "docker-compose.yml").write_text(
        "services:\n  web:\n    image: example/web\n    restart: always\n",
        encoding="utf-8",
    )
    return tree


def _pipeline(revisions, health, runner):
    switcher = EnvironmentSwitcher(
        logger=DummyLogger(),
        console=DummyConsole(),
        command_runner=runner,
        filesystem_service=FileSystemService(logger=DummyLogger()),
        subprocess_module=FakeSubprocess(),
    )
    return ReleasePipeline(
        console=DummyConsole(),
        revision_manager=revisions,
        environment_switcher=switcher,
        health_monitor=health,
        max_wait=30,
        poll_interval=1,
    )


def _compose_actions(runner):
    actions = []
    for cmd in runner.calls:
        env = "shadow" if "-p" in cmd else "production"
        actions.append((env, cmd[-3] if cmd[-3:] == ["up", "-d", "--build"] else cmd[-1]))
    return actions


def test_successful_release_promotes_and_reports_every_step(working_tree):
    revisions = FakeRevisions()
    runner = RecordingRunner()
    reporter = RecordingReporter()

    state = _pipeline(revisions, FakeHealth(), runner).run(
        "owner/service", "v2.0.0", ReleaseConfig(working_path=str(working_tree)), reporter
    )

    assert state.stage == PipelineStage.PROMOTED
    assert state.status == "done"
    assert reporter.events == [
        (0, None, None),
        (1, None, None),
        (2, None, None),
        (3, None, None),
        (4, None, None),
        (5, "done", None),
    ]
    assert revisions.release == "v2.0.0"
    assert revisions.head == "def456"
    assert _compose_actions(runner) == [
        ("shadow", "up"),
        ("shadow", "down"),
        ("production", "up"),
    ]
    assert not (working_tree / "docker-compose-test.yml").exists()


def test_older_release_logs_downgrade_warning(working_tree, caplog):
    revisions = FakeRevisions()
    revisions.release = "v3.0.0"

    with caplog.at_level("WARNING", logger="tagdeploy"):
        _pipeline(revisions, FakeHealth(), RecordingRunner()).run(
            "owner/service", "v2.0.0", ReleaseConfig(working_path=str(working_tree))
        )

    assert "older than the deployed v3.0.0" in caplog.text


def test_shadow_timeout_rolls_back_to_previous_release(working_tree):
    revisions = FakeRevisions()
    runner = RecordingRunner()
    reporter = RecordingReporter()

    with pytest.raises(HealthCheckTimeout):
        _pipeline(revisions, FakeHealth(failing={"shadow"}), runner).run(
            "owner/service", "v2.0.0", ReleaseConfig(working_path=str(working_tree)), reporter
        )

    assert revisions.release == "v1.0.0"
    assert revisions.head == "abc123"
    assert ("production", "up") not in _compose_actions(runner)
    assert ("production", "down") not in _compose_actions(runner)
    assert ("shadow", "down") in _compose_actions(runner)
    assert not (working_tree / "docker-compose-test.yml").exists()
    assert reporter.events[-1][0] == int(PipelineStage.SHADOW_UP)
    assert reporter.events[-1][1] == "failed"
    assert "did not become healthy" in reporter.events[-1][2]


def test_production_failure_restores_previous_release_and_restarts_it(working_tree):
    revisions = FakeRevisions()
    runner = RecordingRunner()

    with pytest.raises(HealthCheckTimeout):
        _pipeline(revisions, FakeHealth(failing={"production"}), runner).run(
            "owner/service", "v2.0.0", ReleaseConfig(working_path=str(working_tree))
        )

    assert revisions.head == "abc123"
    assert revisions.release == "v1.0.0"
    assert _compose_actions(runner) == [
        ("shadow", "up"),
        ("shadow", "down"),
        ("production", "up"),
        ("production", "down"),
        ("production", "up"),
    ]
    assert not (working_tree / "docker-compose-test.yml").exists()


def test_missing_tag_is_rolled_back_without_touching_containers(working_tree):
    revisions = FakeRevisions()
    runner = RecordingRunner()

    with pytest.raises(CheckoutError):
        _pipeline(revisions, FakeHealth(), runner).run(
            "owner/service", "v9.9.9", ReleaseConfig(working_path=str(working_tree))
        )

    assert revisions.restored == 1
    assert revisions.head == "abc123"
    assert runner.calls == []


def test_clone_failure_propagates_without_rollback(working_tree):
    revisions = FakeRevisions(clone_error=CloneError("Could not clone owner/service"))
    reporter = RecordingReporter()

    with pytest.raises(CloneError):
        _pipeline(revisions, FakeHealth(), RecordingRunner()).run(
            "owner/service", "v2.0.0", ReleaseConfig(working_path=str(working_tree)), reporter
        )

    assert revisions.restored == 0
    assert reporter.events == [(0, None, None), (0, "failed", "Could not clone owner/service")]


def test_rollback_failure_raises_rollback_error(working_tree):
    restore_error = CommandExecutionError(["git", "checkout", "abc123"], 1, "error: pathspec")
    revisions = FakeRevisions(restore_error=restore_error)
    reporter = RecordingReporter()

    with pytest.raises(RollbackError) as exc_info:
        _pipeline(revisions, FakeHealth(failing={"shadow"}), RecordingRunner()).run(
            "owner/service", "v2.0.0", ReleaseConfig(working_path=str(working_tree)), reporter
        )

    assert exc_info.value.__cause__ is restore_error
    assert isinstance(exc_info.value.original, HealthCheckTimeout)
    assert "Rollback of owner/service failed" in str(exc_info.value)
    assert reporter.events[-1][1] == "failed"
    assert "Rollback" in reporter.events[-1][2]


class FailingShadowDownRunner(RecordingRunner):
    def run(self, cmd, cwd=None, env=None, check=True, capture_output=False, timeout=None):
        super().run(cmd, cwd=cwd, env=env, check=check, capture_output=capture_output, timeout=timeout)
        if "-p" in cmd and cmd[-1] == "down":
            raise CommandExecutionError(cmd, 1, "Cannot connect to the Docker daemon")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


def test_shadow_teardown_failure_still_discards_shadow_and_restores_tree(working_tree):
    revisions = FakeRevisions()
    runner = FailingShadowDownRunner()

    with pytest.raises(RollbackError) as exc_info:
        _pipeline(revisions, FakeHealth(failing={"shadow"}), runner).run(
            "owner/service", "v2.0.0", ReleaseConfig(working_path=str(working_tree))
        )

    assert isinstance(exc_info.value.__cause__, CommandExecutionError)
    assert isinstance(exc_info.value.original, HealthCheckTimeout)
    assert not (working_tree / "docker-compose-test.yml").exists()
    assert revisions.restored == 1
    assert revisions.head == "abc123"
    assert revisions.release == "v1.0.0"


def test_runs_do_not_share_progress_state(working_tree):
    pipeline = _pipeline(FakeRevisions(), FakeHealth(), RecordingRunner())
    config = ReleaseConfig(working_path=str(working_tree))

    first = pipeline.run("owner/service", "v2.0.0", config)
    second = pipeline.run("owner/service", "v2.0.0", config)

    assert first is not second
    assert first.status == second.status == "done"
