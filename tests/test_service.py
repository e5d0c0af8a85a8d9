import asyncio
import io
from pathlib import Path

import pytest

from pushdeploy.core.config import Settings
from pushdeploy.core.exceptions import ArchiveError, MissingEntryPointError, UnsafeArchiveEntryError, UploadError
from pushdeploy.core.models import DeploymentStatus
from pushdeploy.deploy.service import DeploymentService

from conftest import make_zip, noisy_script, scramble_deflate


def deployment_zip(script: str = 'cat src/app.txt > "$PUSHDEPLOY_TEST_MARKER"\n') -> bytes:
    return make_zip({"DEPLOY.sh": script, "src/app.txt": b"hello from app"})


@pytest.mark.asyncio
async def test_deploy_runs_script_then_reaps_workspace(settings: Settings, marker: Path):
    service = DeploymentService(settings)

    handle = await service.deploy(io.BytesIO(deployment_zip()))
    workspace = handle.workspace

    assert workspace is not None
    assert workspace.root.parent == Path(settings.upload_dir).resolve()
    assert workspace.name.startswith("deploy-")

    exit_code = await handle.wait()

    assert exit_code == 0
    assert marker.read_text() == "hello from app"
    assert not workspace.root.exists()
    assert handle.record.status == DeploymentStatus.REAPED
    assert service.in_flight == 0


@pytest.mark.asyncio
async def test_failing_script_is_logged_not_raised(settings: Settings):
    service = DeploymentService(settings)

    handle = await service.deploy(io.BytesIO(deployment_zip("exit 3\n")))

    assert await handle.wait() == 3
    assert handle.record.details["error"] == "exit status 3"
    assert not handle.workspace.root.exists()


@pytest.mark.asyncio
async def test_missing_entry_point_is_rejected_before_launch(settings: Settings, marker: Path):
    service = DeploymentService(settings)
    data = make_zip({"deploy.sh": 'echo ran > "$PUSHDEPLOY_TEST_MARKER"\n', "src/app.txt": b"x"})

    with pytest.raises(MissingEntryPointError):
        await service.deploy(io.BytesIO(data))

    # The failed workspace is still reaped
    assert await service.drain(timeout=5)
    assert not marker.exists()
    assert list(Path(settings.upload_dir).iterdir()) == []


@pytest.mark.asyncio
async def test_failed_workspace_kept_when_reaping_disabled(settings: Settings):
    service = DeploymentService(settings.model_copy(update={"reap_failed_workspaces": False}))

    with pytest.raises(UnsafeArchiveEntryError):
        await service.deploy(io.BytesIO(make_zip({"../escape.txt": b"x"})))

    assert service.in_flight == 0
    assert len(list(Path(settings.upload_dir).iterdir())) == 1


@pytest.mark.asyncio
async def test_oversized_upload_is_rejected(settings: Settings):
    service = DeploymentService(settings.model_copy(update={"max_upload_size_mb": 0}))

    with pytest.raises(UploadError):
        await service.deploy(io.BytesIO(deployment_zip()))

    assert list(Path(settings.upload_dir).iterdir()) == []
    assert service.in_flight == 0


@pytest.mark.asyncio
async def test_unique_workspace_names(settings: Settings):
    service = DeploymentService(settings.model_copy(update={"unique_workspace_names": True}))

    first = await service.deploy(io.BytesIO(deployment_zip("true\n")))
    second = await service.deploy(io.BytesIO(deployment_zip("true\n")))

    assert first.workspace.root != second.workspace.root
    await asyncio.gather(first.wait(), second.wait())


@pytest.mark.asyncio
async def test_reaper_does_not_wait_for_script(settings: Settings):
    service = DeploymentService(
        settings.model_copy(update={"reap_after_exit": False, "cleanup_delay_seconds": 0.3})
    )

    handle = await service.deploy(io.BytesIO(deployment_zip("sleep 2\n")))
    await handle.reaping

    assert not handle.workspace.root.exists()
    assert not handle.execution.done()
    assert await handle.wait() == 0


@pytest.mark.asyncio
async def test_launch_failure_is_recorded(settings: Settings, tmp_path: Path):
    service = DeploymentService(settings.model_copy(update={"script_interpreter": str(tmp_path / "nope")}))

    handle = await service.deploy(io.BytesIO(deployment_zip()))
    await handle.wait()

    assert handle.record.status == DeploymentStatus.FAILED
    assert handle.record.exit_code is None
    assert "Failed to launch" in handle.record.details["error"]


@pytest.mark.asyncio
async def test_corrupt_deflate_stream_fails_and_reaps_workspace(settings: Settings, marker: Path):
    data = scramble_deflate(make_zip({"DEPLOY.sh": noisy_script(), "src/app.txt": b"hello"}), "DEPLOY.sh")
    service = DeploymentService(settings)

    with pytest.raises(ArchiveError):
        await service.deploy(io.BytesIO(data))

    assert await service.drain(timeout=10)
    assert not marker.exists()
    assert list(Path(settings.upload_dir).iterdir()) == []

