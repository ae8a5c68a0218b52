"""Shared constants for tagdeploy."""

DEFAULT_MANIFEST_FILE = "docker-compose.yml"
DEFAULT_VERSION_FILE = "package.json"
RELEASE_FIELD = "gitRelease"

SHADOW_SUFFIX = "-test"
SHADOW_PROJECT_SUFFIX = "-shadow"

APPS_PREFIX = "app/"
DEFAULT_APPS_DIR = "~/apps"
DEFAULT_PROJECTS_FILE = "projects.json"
DEFAULT_CLONE_URL = "https://github.com/{repository}.git"

DEFAULT_MAX_WAIT_SECONDS = 60.0
DEFAULT_POLL_INTERVAL_SECONDS = 2.0

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5008

STEP_NAMES = ("Start", "Pull", "Build", "Test", "Deploy")
