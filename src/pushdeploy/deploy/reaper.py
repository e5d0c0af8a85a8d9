"""Delayed removal of deployment workspaces.

The grace period is a fixed wall-clock delay. A script that outlives it can
still be writing into its workspace when the directory is removed.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import stat
import sys
from pathlib import Path

import structlog

logger = structlog.get_logger()

# Functions rmtree reports when it cannot stat or descend into a directory
_DESCEND = {os.open, os.scandir, os.listdir, os.lstat}


def _unlock(path: str) -> None:
    if not os.path.islink(path):
        os.chmod(path, stat.S_IMODE(os.lstat(path).st_mode) | stat.S_IRWXU)


def _retry_unlocked(func, path, exc) -> None:
    """rmtree error hook: grant the owner access to ``path`` and its parent, then retry.

    Deployments may carry directory modes such as 0o555 that forbid removing
    their own entries.
    """
    if isinstance(exc, tuple):
        exc = exc[1]
    if not isinstance(exc, PermissionError):
        raise exc

    parent = os.path.dirname(path)
    if parent:
        _unlock(parent)
    if func in _DESCEND and os.path.isdir(path) and not os.path.islink(path):
        _unlock(path)
        if not os.access(path, os.R_OK | os.W_OK | os.X_OK):
            raise exc
        _rmtree(path)
    elif func is not os.lstat:
        func(path)


def _rmtree(path) -> None:
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_retry_unlocked)
    else:
        shutil.rmtree(path, onerror=_retry_unlocked)


def remove_workspace(path: Path) -> bool:
    """Recursively delete a workspace.

    A workspace that no longer exists counts as removed. Other failures are
    logged and reported through the return value, never raised.
    """
    try:
        _rmtree(path)
    except FileNotFoundError:
        logger.debug("Workspace already removed", workspace=str(path))
        return True
    except OSError as exc:
        logger.error("Failed to cleanup directory", workspace=str(path), error=str(exc))
        return False

    logger.info("Cleaned up deployment directory", workspace=str(path))
    return True


async def reap_after(path: Path, delay: float) -> bool:
    """Wait ``delay`` seconds, then remove the workspace at ``path``."""
    if delay > 0:
        await asyncio.sleep(delay)
    return await asyncio.to_thread(remove_workspace, path)
