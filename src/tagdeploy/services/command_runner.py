"""Subprocess execution service for tagdeploy."""

import os
import subprocess
from typing import Dict, List, Optional

from tagdeploy.errors import CommandExecutionError


class CommandRunner:
    """Runs git and docker commands with consistent error handling."""

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    def run(
        self,
        cmd: List[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        if cwd:
            self.logger.debug("Executing in %s: %s", cwd, cmd_str)
        else:
            self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        child_env = None
        if env:
            child_env = dict(os.environ)
            child_env.update(env)

        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                env=child_env,
                text=True,
                capture_output=capture_output,
                timeout=effective_timeout,
            )
        except FileNotFoundError as exc:
            raise CommandExecutionError(
                cmd, 127, f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandExecutionError(
                cmd, None, f"Command timed out after {effective_timeout}s"
            ) from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        error = CommandExecutionError(cmd, result.returncode, stderr)
        if check:
            raise error

        self.logger.warning(str(error))
        return result

    def output(self, cmd: List[str], cwd: Optional[str] = None) -> str:
        """Runs a command and returns its stripped standard output."""
        result = self.run(cmd, cwd=cwd, capture_output=True)
        return (result.stdout or "").strip()
