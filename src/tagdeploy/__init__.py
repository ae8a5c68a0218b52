"""
tagdeploy - Release-driven Docker Compose deployments with shadow validation
"""

__version__ = "0.3.0"

from .core import TagDeployer
from .errors import DeployError

__all__ = ["TagDeployer", "DeployError"]
