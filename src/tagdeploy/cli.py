import logging
import os

import click
import uvicorn
from rich.logging import RichHandler

from .constants import (
    DEFAULT_APPS_DIR,
    DEFAULT_HOST,
    DEFAULT_MAX_WAIT_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_PORT,
    DEFAULT_PROJECTS_FILE,
)
from .core import TagDeployer
from .errors import DeployError
from .models import ReleaseTrigger
from .server import create_app
from .services.config_loader import ConfigLoader, ProjectRegistry


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _load_config(config_path):
    resolved_config = config_path
    if resolved_config is None:
        default_config_path = os.path.join(os.getcwd(), ".tagdeploy.yml")
        if os.path.exists(default_config_path):
            resolved_config = default_config_path

    try:
        return ConfigLoader().load(resolved_config)
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc


def _configure_logging(verbose: bool, log_file):
    logger = logging.getLogger("tagdeploy")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)


def _build_deployer(config_values, max_wait, poll_interval) -> TagDeployer:
    return TagDeployer(
        max_wait=float(_resolve_option(max_wait, config_values, "max_wait", default=DEFAULT_MAX_WAIT_SECONDS)),
        poll_interval=float(
            _resolve_option(poll_interval, config_values, "poll_interval", default=DEFAULT_POLL_INTERVAL_SECONDS)
        ),
        discord_webhook_url=config_values.get("discord_webhook_url"),
    )


def _build_registry(config_values, projects_file, apps_dir) -> ProjectRegistry:
    return ProjectRegistry(
        projects_file=_resolve_option(projects_file, config_values, "projects_file", default=DEFAULT_PROJECTS_FILE),
        apps_dir=_resolve_option(apps_dir, config_values, "apps_dir", default=DEFAULT_APPS_DIR),
    )


def common_options(func):
    options = [
        click.option(
            "--config",
            required=False,
            type=click.Path(),
            help="Path to a YAML configuration file. Defaults to .tagdeploy.yml if present.",
        ),
        click.option(
            "--projects-file",
            required=False,
            type=click.Path(),
            help=f"Repository to deployment settings mapping (default: {DEFAULT_PROJECTS_FILE}).",
        ),
        click.option("--apps-dir", required=False, help="Directory that `app/` project paths resolve to."),
        click.option("--max-wait", type=float, default=None, help="Seconds to wait for healthy containers."),
        click.option("--poll-interval", type=float, default=None, help="Seconds between health checks."),
        click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging"),
        click.option("--log-file", type=click.Path(), help="Path to log file"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
def main():
    """Deploy tagged releases to Docker Compose services with shadow validation."""


@main.command()
@click.option("--repo", "repository", required=True, help="Repository name, e.g. owner/project.")
@click.option("--tag", required=True, help="Release tag to deploy.")
@common_options
def deploy(repository, tag, config, projects_file, apps_dir, max_wait, poll_interval, verbose, log_file):
    """Deploy one release synchronously."""
    config_values = _load_config(config)
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    _configure_logging(verbose, _resolve_option(log_file, config_values, "log_file"))

    registry = _build_registry(config_values, projects_file, apps_dir)
    try:
        release_config = registry.get(repository)
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc
    if release_config is None:
        raise click.ClickException(f"Repository {repository} is not listed in {registry.projects_file}.")

    deployer = _build_deployer(config_values, max_wait, poll_interval)
    trigger = ReleaseTrigger(repository=repository, tag=tag, config=release_config)
    raise SystemExit(0 if deployer.handle_trigger(trigger) else 1)


@main.command()
@click.option("--host", default=None, help=f"Interface to bind (default: {DEFAULT_HOST}).")
@click.option("--port", type=int, default=None, help=f"Port to listen on (default: {DEFAULT_PORT}).")
@click.option("--secret", envvar="WEBHOOK_SECRET", required=False, help="Webhook signing secret.")
@common_options
def serve(host, port, secret, config, projects_file, apps_dir, max_wait, poll_interval, verbose, log_file):
    """Listen for release webhooks."""
    config_values = _load_config(config)
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    _configure_logging(verbose, _resolve_option(log_file, config_values, "log_file"))

    if not secret:
        raise click.ClickException("WEBHOOK_SECRET environment variable is required")

    app = create_app(
        deployer=_build_deployer(config_values, max_wait, poll_interval),
        registry=_build_registry(config_values, projects_file, apps_dir),
        secret=secret,
    )
    uvicorn.run(
        app,
        host=_resolve_option(host, config_values, "host", default=DEFAULT_HOST),
        port=int(_resolve_option(port, config_values, "port", default=DEFAULT_PORT)),
        log_config=None,
    )


if __name__ == "__main__":
    main()
