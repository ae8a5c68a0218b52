"""Git working tree management for release checkouts and rollbacks."""

import json
import os
from typing import Any, Dict, Optional, Tuple

from tagdeploy.constants import DEFAULT_CLONE_URL, RELEASE_FIELD
from tagdeploy.errors import CheckoutError, CloneError, CommandExecutionError, DeployError
from tagdeploy.errors_catalog import actionable_error
from tagdeploy.models import RevisionRecord


class RevisionManager:
    """Clones repositories, checks out release tags and restores baselines.

    The version metadata file (``package.json`` by default) is owned by the
    pipeline: local edits to it are discarded before every checkout and its
    ``gitRelease`` field records the deployed tag. A repository without the
    file simply has no version tracking.
    """

    def __init__(self, logger, console, command_runner, filesystem_service):
        self.logger = logger
        self.console = console
        self.runner = command_runner
        self.filesystem = filesystem_service

    def ensure_cloned(self, repository: str, working_path: str, clone_url: Optional[str] = None):
        if os.path.exists(working_path):
            self.logger.debug("Working tree already present at %s", working_path)
            return

        url = clone_url or DEFAULT_CLONE_URL.format(repository=repository)
        self.console.print(f"[blue]Cloning {repository}...[/blue]")
        try:
            self.runner.run(["git", "clone", url, working_path])
            return
        except CommandExecutionError as exc:
            self.logger.warning("git clone failed, trying with gh CLI: %s", exc)

        try:
            self.runner.run(["gh", "repo", "clone", repository, working_path])
        except CommandExecutionError as exc:
            raise CloneError(
                actionable_error("clone_failed", repository=repository, path=working_path)
            ) from exc

    def current_revision(self, working_path: str) -> str:
        return self.runner.output(["git", "rev-parse", "HEAD"], cwd=working_path)

    def capture_baseline(self, working_path: str, version_file: str) -> Tuple[str, Optional[str]]:
        revision = self.current_revision(working_path)
        previous_tag = self.read_release_tag(working_path, version_file)
        self.logger.debug("Previous revision: %s (release %s)", revision, previous_tag or "<none>")
        return revision, previous_tag

    def checkout_tag(self, working_path: str, tag: str, version_file: str):
        self.runner.run(["git", "fetch", "--tags"], cwd=working_path)

        found = self.runner.run(
            ["git", "rev-parse", "--verify", "--quiet", f"refs/tags/{tag}"],
            cwd=working_path,
            check=False,
            capture_output=True,
        )
        if found.returncode != 0:
            raise CheckoutError(actionable_error("tag_not_found", tag=tag, path=working_path))

        self.discard_version_file_changes(working_path, version_file)
        try:
            self.runner.run(["git", "checkout", tag], cwd=working_path)
        except CommandExecutionError as exc:
            raise CheckoutError(
                actionable_error("checkout_failed", tag=tag, path=working_path)
            ) from exc

        self.write_release_tag(working_path, version_file, tag)
        self.console.print(f"[green]Checked out {tag}.[/green]")

    def restore_revision(self, working_path: str, record: RevisionRecord, version_file: str):
        self.discard_version_file_changes(working_path, version_file)
        self.runner.run(["git", "checkout", record.previous_revision], cwd=working_path)
        if record.previous_version_tag:
            self.write_release_tag(working_path, version_file, record.previous_version_tag)
        self.logger.info("Restored %s to %s", working_path, record.previous_revision)

    def discard_version_file_changes(self, working_path: str, version_file: str):
        if not os.path.exists(os.path.join(working_path, version_file)):
            return
        tracked = self.runner.run(
            ["git", "ls-files", "--error-unmatch", "--", version_file],
            cwd=working_path,
            check=False,
            capture_output=True,
        )
        if tracked.returncode != 0:
            self.logger.debug("%s is not tracked by git; keeping local edits", version_file)
            return
        self.runner.run(["git", "checkout", "--", version_file], cwd=working_path)

    def read_release_tag(self, working_path: str, version_file: str) -> Optional[str]:
        path = os.path.join(working_path, version_file)
        if not os.path.exists(path):
            return None
        data = self._load_version_file(path)
        value = data.get(RELEASE_FIELD)
        return str(value) if value else None

    def write_release_tag(self, working_path: str, version_file: str, tag: str):
        path = os.path.join(working_path, version_file)
        if not os.path.exists(path):
            return
        data = self._load_version_file(path)
        data[RELEASE_FIELD] = tag
        self.filesystem.write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")
        self.logger.debug("Recorded release %s in %s", tag, version_file)

    def _load_version_file(self, path: str) -> Dict[str, Any]:
        try:
            data = json.loads(self.filesystem.read_text(path))
        except (OSError, json.JSONDecodeError) as exc:
            raise DeployError(f"Could not read version file '{path}': {exc}") from exc
        if not isinstance(data, dict):
            raise DeployError(f"Version file '{path}' must contain a JSON object.")
        return data
