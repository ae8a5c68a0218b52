"""Domain errors for tagdeploy."""

from typing import List, Optional


class DeployError(RuntimeError):
    """Raised when a release cannot be deployed."""


class CommandExecutionError(DeployError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, cmd: List[str], exit_code: Optional[int], stderr: str = ""):
        self.cmd = list(cmd)
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"Command failed ({exit_code}): {' '.join(self.cmd)}"
        if stderr:
            message = f"{message}\n{stderr}"
        super().__init__(message)


class CloneError(DeployError):
    """Both the primary and the fallback clone methods failed."""


class CheckoutError(DeployError):
    """The release tag does not exist or could not be checked out."""


class HealthCheckTimeout(DeployError):
    """Containers did not become healthy before the deadline."""


class RollbackError(DeployError):
    """Restoring the previous state failed; manual intervention is required."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        self.original = original
        super().__init__(message)
