"""Configuration loading for tagdeploy."""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from tagdeploy.constants import APPS_PREFIX, DEFAULT_APPS_DIR, DEFAULT_MANIFEST_FILE, DEFAULT_VERSION_FILE
from tagdeploy.errors import DeployError
from tagdeploy.errors_catalog import actionable_error
from tagdeploy.models import ReleaseConfig


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "projects_file",
        "apps_dir",
        "max_wait",
        "poll_interval",
        "host",
        "port",
        "verbose",
        "log_file",
        "discord_webhook_url",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise DeployError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise DeployError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise DeployError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise DeployError(f"Unknown configuration keys: {unknown_list}")

        return parsed


class ProjectRegistry:
    """Maps repository names to their deployment settings.

    The projects file is JSON (``projects.json``) or YAML. Each entry needs a
    ``path``; ``composeFile``/``compose_file``, ``version_file`` and
    ``clone_url`` are optional. Paths starting with ``app/`` are placed under
    the apps directory.
    """

    def __init__(self, projects_file: str, apps_dir: str = DEFAULT_APPS_DIR):
        self.projects_file = projects_file
        self.apps_dir = os.path.expanduser(apps_dir)

    def load(self) -> Dict[str, ReleaseConfig]:
        path = Path(self.projects_file)
        try:
            text = path.read_text(encoding="utf-8")
            if path.suffix.lower() == ".json":
                parsed = json.loads(text)
            else:
                parsed = yaml.safe_load(text)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise DeployError(actionable_error("projects_file_invalid", path=self.projects_file)) from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise DeployError(actionable_error("projects_file_invalid", path=self.projects_file))

        return {repository: self._build_config(repository, entry) for repository, entry in parsed.items()}

    def get(self, repository: str) -> Optional[ReleaseConfig]:
        return self.load().get(repository)

    def normalize_path(self, working_path: str) -> str:
        if working_path.startswith(APPS_PREFIX):
            return os.path.join(self.apps_dir, working_path[len(APPS_PREFIX):])
        return working_path

    def _build_config(self, repository: str, entry: Any) -> ReleaseConfig:
        if not isinstance(entry, dict) or not entry.get("path"):
            raise DeployError(f"Project '{repository}' must define a `path`.")

        return ReleaseConfig(
            working_path=self.normalize_path(str(entry["path"])),
            manifest_file=entry.get("composeFile") or entry.get("compose_file") or DEFAULT_MANIFEST_FILE,
            version_file=entry.get("version_file") or DEFAULT_VERSION_FILE,
            clone_url=entry.get("clone_url"),
        )
