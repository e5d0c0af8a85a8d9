"""Entry-point script discovery and execution."""

from __future__ import annotations

import asyncio
import os
import stat
from pathlib import Path
from typing import Dict, Optional

import structlog

from pushdeploy.core.exceptions import MissingEntryPointError, WorkspaceError

logger = structlog.get_logger()

EXECUTABLE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def prepare_entry_point(extract_dir: Path, name: str) -> Path:
    """Locate the entry-point script at the extraction root and make it executable.

    Raises:
        MissingEntryPointError: No regular file named ``name`` at the root
        WorkspaceError: The permission change failed
    """
    script = extract_dir / name
    if not script.is_file():
        raise MissingEntryPointError(f"{name} not found in deployment")

    try:
        mode = stat.S_IMODE(script.stat().st_mode)
        os.chmod(script, mode | EXECUTABLE_BITS)
    except OSError as exc:
        raise WorkspaceError(f"Failed to make deploy script executable: {exc}") from exc
    return script


async def _forward_output(stream: Optional[asyncio.StreamReader], stream_name: str, deployment_id: str) -> None:
    """Forward script output into the agent log, one line per event."""
    if stream is None:
        return
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            logger.warning("Dropped over-long output line", deployment_id=deployment_id, stream=stream_name)
            continue
        if not line:  # EOF
            break
        text = line.decode("utf-8", errors="replace").rstrip()
        if text:
            logger.info(
                f"Deploy script {stream_name}",
                deployment_id=deployment_id,
                stream=stream_name,
                log=text,
            )


async def run_entry_point(
    script: Path,
    *,
    interpreter: str,
    deployment_id: str,
    env: Optional[Dict[str, str]] = None,
) -> int:
    """Run ``script`` from its own directory and wait for it to exit.

    There is no timeout: the script runs to completion or failure.

    Returns:
        The script's exit status

    Raises:
        OSError: The interpreter could not be launched
    """
    cwd = script.parent
    process_env = {
        **os.environ,
        **(env or {}),
        "DEPLOYMENT_ID": deployment_id,
        "DEPLOY_WORKSPACE": str(cwd),
    }

    process = await asyncio.create_subprocess_exec(
        interpreter,
        script.name,
        cwd=str(cwd),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=process_env,
    )
    logger.info("Deploy script started", deployment_id=deployment_id, pid=process.pid, script=str(script))

    await asyncio.gather(
        _forward_output(process.stdout, "stdout", deployment_id),
        _forward_output(process.stderr, "stderr", deployment_id),
    )
    return await process.wait()
