"""Core data models for pushdeploy."""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field

ARCHIVE_FILENAME = "deployment.zip"
EXTRACT_DIRNAME = "extracted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentStatus(str, Enum):
    """Lifecycle of a single deployment."""

    UPLOADING = "uploading"
    EXTRACTING = "extracting"
    AWAITING_EXECUTION = "awaiting_execution"
    EXECUTING = "executing"
    REAPED = "reaped"
    FAILED = "failed"


class Workspace(BaseModel):
    """Per-deployment directory holding the uploaded archive and its extracted tree."""

    name: str = Field(..., description="Directory name, derived from the upload timestamp")
    root: Path = Field(..., description="Absolute workspace path")

    @property
    def archive_path(self) -> Path:
        return self.root / ARCHIVE_FILENAME

    @property
    def extract_dir(self) -> Path:
        return self.root / EXTRACT_DIRNAME


class DeploymentRecord(BaseModel):
    """Transient record of one deployment request. Never persisted."""

    deployment_id: str
    workspace: Optional[Workspace] = None
    status: DeploymentStatus = DeploymentStatus.UPLOADING
    exit_code: Optional[int] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    details: Dict[str, str] = Field(default_factory=dict)

    def update_status(self, status: DeploymentStatus, details: Optional[Dict[str, str]] = None):
        self.status = status
        self.updated_at = _utcnow()
        if details:
            self.details.update(details)
