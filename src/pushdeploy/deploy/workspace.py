"""Workspace creation and upload persistence."""

from __future__ import annotations

import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Optional

import structlog

from pushdeploy.core.exceptions import UploadError, WorkspaceError
from pushdeploy.core.models import Workspace

logger = structlog.get_logger()

WORKSPACE_PREFIX = "deploy-"
TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
CHUNK_SIZE = 64 * 1024


def workspace_name(now: Optional[datetime] = None, unique: bool = False) -> str:
    """Name a workspace after the upload time, to the second.

    Two uploads in the same second share a name unless ``unique`` is set.
    """
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    name = f"{WORKSPACE_PREFIX}{stamp}"
    if unique:
        name = f"{name}-{uuid.uuid4().hex[:8]}"
    return name


def create_workspace(upload_dir: Path, *, unique: bool = False, now: Optional[datetime] = None) -> Workspace:
    """Create (or reuse) the workspace directory for a new upload."""
    name = workspace_name(now, unique)
    root = upload_dir.resolve() / name
    try:
        root.mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as exc:
        raise WorkspaceError(f"Failed to create deployment directory: {exc}") from exc
    logger.info("Workspace created", workspace=str(root))
    return Workspace(name=name, root=root)


def save_upload(stream: BinaryIO, dest_path: Path, max_size_bytes: int) -> int:
    """Copy the uploaded archive to ``dest_path`` with max-size enforcement.

    Returns number of bytes written.
    """
    bytes_written = 0
    try:
        with open(dest_path, "wb") as f:
            for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
                bytes_written += len(chunk)
                if bytes_written > max_size_bytes:
                    break
                f.write(chunk)
    except OSError as exc:
        raise WorkspaceError(f"Failed to save archive: {exc}") from exc

    if bytes_written > max_size_bytes:
        try:
            os.remove(dest_path)
        except OSError:
            logger.warning("Failed to remove oversized upload", path=str(dest_path))
        raise UploadError(f"Upload exceeds maximum allowed size of {max_size_bytes} bytes")

    return bytes_written


def discard_empty_workspace(root: Path) -> None:
    """Remove a workspace directory left empty by a rejected upload.

    A directory that still has content belongs to another upload from the
    same second and is left alone.
    """
    try:
        root.rmdir()
    except OSError as exc:
        logger.debug("Workspace kept", workspace=str(root), reason=str(exc))
        return
    logger.info("Removed empty workspace", workspace=str(root))
