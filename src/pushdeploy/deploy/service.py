"""Upload, extract and execute pipeline for pushed deployments.

Everything up to the entry-point launch runs within the request and its
errors are raised to the caller. Script execution and workspace removal run
as detached tasks; their outcome is only visible in the logs.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Optional, Set

import structlog
from prometheus_client import Counter

from pushdeploy.archive.extractor import safe_extract
from pushdeploy.core.config import Settings
from pushdeploy.core.exceptions import PushDeployError, UploadError
from pushdeploy.core.models import DeploymentRecord, DeploymentStatus, Workspace
from pushdeploy.deploy.executor import prepare_entry_point, run_entry_point
from pushdeploy.deploy.reaper import reap_after
from pushdeploy.deploy.workspace import create_workspace, discard_empty_workspace, save_upload
from pushdeploy.utils.logging import bind_deployment_context

logger = structlog.get_logger()

DEPLOYMENTS_TOTAL = Counter(
    "pushdeploy_deployments_total",
    "Deployment requests by outcome",
    ["outcome"],
)

SCRIPT_RUNS_TOTAL = Counter(
    "pushdeploy_script_runs_total",
    "Entry-point script runs by result",
    ["result"],
)

WORKSPACES_REAPED_TOTAL = Counter(
    "pushdeploy_workspaces_reaped_total",
    "Workspace removals by result",
    ["result"],
)


@dataclass
class DeploymentHandle:
    """Detached work started for one deployment."""

    record: DeploymentRecord
    execution: Optional[asyncio.Task] = None
    reaping: Optional[asyncio.Task] = None

    @property
    def workspace(self) -> Optional[Workspace]:
        return self.record.workspace

    async def wait(self) -> Optional[int]:
        """Wait for the script and the reaper to finish. Returns the exit status."""
        tasks = [t for t in (self.execution, self.reaping) if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return self.record.exit_code


@dataclass
class DeploymentService:
    """Runs pushed deployments inside per-request workspaces."""

    settings: Settings
    _tasks: Set[asyncio.Task] = field(default_factory=set, init=False, repr=False)

    @property
    def upload_dir(self) -> Path:
        return Path(self.settings.upload_dir)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def ensure_upload_dir(self) -> None:
        self.upload_dir.mkdir(mode=0o755, parents=True, exist_ok=True)

    async def deploy(self, upload: BinaryIO) -> DeploymentHandle:
        """Persist, extract and launch an uploaded deployment archive.

        Args:
            upload: Readable binary stream of the archive bytes

        Returns:
            Handle on the detached execution and reaping tasks

        Raises:
            PushDeployError: Any failure before the script is launched
        """
        record = DeploymentRecord(deployment_id=uuid.uuid4().hex[:12])
        bind_deployment_context(deployment_id=record.deployment_id)
        try:
            workspace = await asyncio.to_thread(self._receive, upload)
        except PushDeployError as exc:
            self._fail(record, exc)
            raise
        record.workspace = workspace
        bind_deployment_context(workspace=str(workspace.root))

        try:
            record.update_status(DeploymentStatus.EXTRACTING)
            await asyncio.to_thread(safe_extract, workspace.archive_path, workspace.extract_dir)

            record.update_status(DeploymentStatus.AWAITING_EXECUTION)
            script = await asyncio.to_thread(prepare_entry_point, workspace.extract_dir, self.settings.entry_script)
        except PushDeployError as exc:
            self._fail(record, exc)
            if self.settings.reap_failed_workspaces:
                self._spawn(self._reap(record, workspace))
            raise

        handle = self._launch(record, workspace, script)
        DEPLOYMENTS_TOTAL.labels(outcome="started").inc()
        return handle

    def _receive(self, upload: BinaryIO) -> Workspace:
        workspace = create_workspace(self.upload_dir, unique=self.settings.unique_workspace_names)
        try:
            size = save_upload(upload, workspace.archive_path, self.settings.max_upload_size_bytes)
        except UploadError:
            discard_empty_workspace(workspace.root)
            raise
        logger.info("Deployment archive saved", workspace=str(workspace.root), bytes=size)
        return workspace

    def _fail(self, record: DeploymentRecord, exc: PushDeployError) -> None:
        record.update_status(DeploymentStatus.FAILED, {"error": str(exc)})
        DEPLOYMENTS_TOTAL.labels(outcome="rejected" if exc.status_code < 500 else "failed").inc()
        logger.warning("Deployment rejected", error=str(exc), status_code=exc.status_code)

    def _launch(self, record: DeploymentRecord, workspace: Workspace, script: Path) -> DeploymentHandle:
        record.update_status(DeploymentStatus.EXECUTING)
        handle = DeploymentHandle(record=record)
        handle.execution = self._spawn(self._execute(record, script))

        if self.settings.reap_after_exit:
            handle.reaping = self._spawn(self._reap(record, workspace, after=handle.execution))
        else:
            handle.reaping = self._spawn(self._reap(record, workspace))
        return handle

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _execute(self, record: DeploymentRecord, script: Path) -> None:
        try:
            exit_code = await run_entry_point(
                script,
                interpreter=self.settings.script_interpreter,
                deployment_id=record.deployment_id,
            )
        except OSError as exc:
            SCRIPT_RUNS_TOTAL.labels(result="launch_failed").inc()
            record.update_status(DeploymentStatus.FAILED, {"error": f"Failed to launch deploy script: {exc}"})
            logger.error("Deploy script failed to launch", error=str(exc))
            return
        except Exception as exc:
            SCRIPT_RUNS_TOTAL.labels(result="error").inc()
            record.update_status(DeploymentStatus.FAILED, {"error": str(exc)})
            logger.exception("Deploy script execution failed")
            return

        record.exit_code = exit_code
        if exit_code == 0:
            SCRIPT_RUNS_TOTAL.labels(result="success").inc()
            logger.info("Deploy script completed successfully")
        else:
            SCRIPT_RUNS_TOTAL.labels(result="failure").inc()
            record.details["error"] = f"exit status {exit_code}"
            logger.error("Deploy script failed", exit_code=exit_code)

    async def _reap(
        self,
        record: DeploymentRecord,
        workspace: Workspace,
        after: Optional[asyncio.Task] = None,
    ) -> None:
        if after is not None:
            await asyncio.gather(after, return_exceptions=True)
        removed = await reap_after(workspace.root, self.settings.cleanup_delay_seconds)
        WORKSPACES_REAPED_TOTAL.labels(result="removed" if removed else "error").inc()
        if removed and record.status != DeploymentStatus.FAILED:
            record.update_status(DeploymentStatus.REAPED)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for detached deployment work. Returns False if ``timeout`` expired first."""
        if not self._tasks:
            return True
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return not pending
