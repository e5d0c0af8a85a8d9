import stat
from pathlib import Path

import pytest

from pushdeploy.deploy import reaper
from pushdeploy.deploy.reaper import reap_after, remove_workspace


def make_workspace(root: Path) -> Path:
    ws = root / "deploy-20240101-000000"
    (ws / "extracted" / "src").mkdir(parents=True)
    (ws / "deployment.zip").write_bytes(b"zip")
    (ws / "extracted" / "src" / "app.txt").write_text("app")
    return ws


def test_remove_workspace_deletes_tree(tmp_path: Path):
    ws = make_workspace(tmp_path)

    assert remove_workspace(ws) is True
    assert not ws.exists()


def test_remove_workspace_is_idempotent(tmp_path: Path):
    ws = make_workspace(tmp_path)

    assert remove_workspace(ws) is True
    assert remove_workspace(ws) is True
    assert not ws.exists()


def test_remove_workspace_failure_is_not_raised(tmp_path: Path, monkeypatch):
    ws = make_workspace(tmp_path)

    def failing_rmtree(path, *args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr(reaper.shutil, "rmtree", failing_rmtree)

    assert remove_workspace(ws) is False
    assert ws.exists()


@pytest.mark.asyncio
async def test_reap_after_waits_then_removes(tmp_path: Path):
    ws = make_workspace(tmp_path)

    assert await reap_after(ws, 0.05) is True
    assert not ws.exists()
    assert await reap_after(ws, 0) is True


@pytest.mark.parametrize("mode", [0o555, 0o500, 0o444, 0o000])
def test_remove_workspace_with_locked_directories(tmp_path: Path, mode: int):
    ws = make_workspace(tmp_path)
    locked = ws / "extracted" / "locked"
    (locked / "inner").mkdir(parents=True)
    (locked / "file.txt").write_text("data")
    (locked / "inner" / "deep.txt").write_text("deep")
    (locked / "inner").chmod(mode)
    locked.chmod(mode)

    assert remove_workspace(ws) is True
    assert not ws.exists()


def test_remove_workspace_leaves_symlink_targets_alone(tmp_path: Path):
    ws = make_workspace(tmp_path)
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "keep.txt").write_text("keep")
    outside.chmod(0o555)
    (ws / "extracted" / "link").symlink_to(outside, target_is_directory=True)

    assert remove_workspace(ws) is True
    assert not ws.exists()
    assert (outside / "keep.txt").read_text() == "keep"
    assert stat.S_IMODE(outside.stat().st_mode) == 0o555
    outside.chmod(0o755)
