import stat
from pathlib import Path

import pytest

from pushdeploy.core.exceptions import MissingEntryPointError
from pushdeploy.deploy.executor import prepare_entry_point, run_entry_point


def write_script(root: Path, body: str, name: str = "DEPLOY.sh") -> Path:
    root.mkdir(parents=True, exist_ok=True)
    script = root / name
    script.write_text(body)
    script.chmod(0o644)
    return script


def test_prepare_entry_point_makes_script_executable(tmp_path: Path):
    write_script(tmp_path, "echo hi\n")

    script = prepare_entry_point(tmp_path, "DEPLOY.sh")

    assert script == tmp_path / "DEPLOY.sh"
    assert stat.S_IMODE(script.stat().st_mode) == 0o755


def test_prepare_entry_point_missing_script(tmp_path: Path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "DEPLOY.sh").write_text("echo nested\n")

    with pytest.raises(MissingEntryPointError) as exc_info:
        prepare_entry_point(tmp_path, "DEPLOY.sh")

    assert exc_info.value.status_code == 400


def test_prepare_entry_point_rejects_directory(tmp_path: Path):
    (tmp_path / "DEPLOY.sh").mkdir()

    with pytest.raises(MissingEntryPointError):
        prepare_entry_point(tmp_path, "DEPLOY.sh")


@pytest.mark.asyncio
async def test_run_entry_point_uses_extraction_root(tmp_path: Path, marker: Path):
    root = tmp_path / "extracted"
    script = write_script(
        root,
        'pwd > "$PUSHDEPLOY_TEST_MARKER"\n'
        'echo "$DEPLOYMENT_ID" >> "$PUSHDEPLOY_TEST_MARKER"\n'
        'echo "to stdout"\n'
        'echo "to stderr" 1>&2\n',
    )

    exit_code = await run_entry_point(script, interpreter="/bin/sh", deployment_id="dep-123")

    assert exit_code == 0
    cwd, deployment_id = marker.read_text().splitlines()
    assert Path(cwd).resolve() == root.resolve()
    assert deployment_id == "dep-123"


@pytest.mark.asyncio
async def test_run_entry_point_reports_non_zero_exit(tmp_path: Path):
    script = write_script(tmp_path, "exit 7\n")

    exit_code = await run_entry_point(script, interpreter="/bin/sh", deployment_id="dep-1")

    assert exit_code == 7


@pytest.mark.asyncio
async def test_run_entry_point_has_no_stdin(tmp_path: Path, marker: Path):
    script = write_script(tmp_path, 'if read line; then echo got > "$PUSHDEPLOY_TEST_MARKER"; else echo eof > "$PUSHDEPLOY_TEST_MARKER"; fi\n')

    exit_code = await run_entry_point(script, interpreter="/bin/sh", deployment_id="dep-1")

    assert exit_code == 0
    assert marker.read_text().strip() == "eof"


@pytest.mark.asyncio
async def test_run_entry_point_missing_interpreter(tmp_path: Path):
    script = write_script(tmp_path, "echo hi\n")

    with pytest.raises(OSError):
        await run_entry_point(script, interpreter=str(tmp_path / "no-such-shell"), deployment_id="dep-1")
