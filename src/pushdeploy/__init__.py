"""pushdeploy - Push a directory to a remote agent and run its deploy script."""

__version__ = "0.1.0"
__author__ = "pushdeploy developers"

from pushdeploy.core.config import Settings
from pushdeploy.core.models import DeploymentRecord, DeploymentStatus, Workspace

__all__ = ["Settings", "DeploymentRecord", "DeploymentStatus", "Workspace", "__version__"]
