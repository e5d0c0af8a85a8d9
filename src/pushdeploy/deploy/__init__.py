"""
Deployment pipeline for pushed archives.

- create_workspace / save_upload: per-request workspace and raw archive
- prepare_entry_point / run_entry_point: DEPLOY.sh discovery and execution
- remove_workspace / reap_after: delayed workspace removal
- DeploymentService: orchestrates the above for the /deploy endpoint
"""

from .executor import prepare_entry_point, run_entry_point
from .reaper import reap_after, remove_workspace
from .service import DeploymentHandle, DeploymentService
from .workspace import create_workspace, save_upload, workspace_name

__all__ = [
    "create_workspace",
    "save_upload",
    "workspace_name",
    "prepare_entry_point",
    "run_entry_point",
    "reap_after",
    "remove_workspace",
    "DeploymentHandle",
    "DeploymentService",
]
