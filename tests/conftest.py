"""
Pytest configuration and fixtures for pushdeploy tests.
"""

import io
import zipfile
from pathlib import Path
from typing import Dict, Union

import pytest

from pushdeploy.core.config import Settings

API_KEY = "S1"


def make_zip(entries: Dict[str, Union[bytes, str]], modes: Dict[str, int] | None = None) -> bytes:
    """Build zip bytes from ``{name: content}``; names ending in ``/`` are directories."""
    modes = modes or {}
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            info = zipfile.ZipInfo(name)
            if name.endswith("/"):
                info.external_attr = (0o040000 | modes.get(name, 0o755)) << 16 | 0x10
            else:
                info.external_attr = (0o100000 | modes.get(name, 0o644)) << 16
                info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, data)
    return buf.getvalue()


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def settings(upload_dir: Path) -> Settings:
    """Agent settings with immediate cleanup after the script exits."""
    return Settings(
        api_key=API_KEY,
        upload_dir=str(upload_dir),
        script_interpreter="/bin/sh",
        cleanup_delay_seconds=0,
        reap_after_exit=True,
        metrics_enabled=False,
        log_format="console",
    )


@pytest.fixture
def marker(tmp_path: Path, monkeypatch) -> Path:
    """File path exported to deploy scripts as $PUSHDEPLOY_TEST_MARKER."""
    path = tmp_path / "marker.txt"
    monkeypatch.setenv("PUSHDEPLOY_TEST_MARKER", str(path))
    return path


def scramble_deflate(data: bytes, name: str) -> bytes:
    """Overwrite the start of ``name``'s compressed stream with 0xFF bytes.

    The central directory stays valid, so the archive opens and only fails
    once the entry is decompressed.
    """
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        info = zf.getinfo(name)
    header = info.header_offset
    name_len = int.from_bytes(data[header + 26:header + 28], "little")
    extra_len = int.from_bytes(data[header + 28:header + 30], "little")
    start = header + 30 + name_len + extra_len
    return data[:start] + b"\xff" * 10 + data[start + 10:]


def noisy_script(lines: int = 200) -> str:
    """A deploy script long enough that its deflate stream spans many bytes."""
    return "".join(f'echo "step {i}"\n' for i in range(lines))
