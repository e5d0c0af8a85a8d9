"""Zip archive contract shared by the client and the agent.

A deployment archive is a standard deflate zip. Every entry carries a relative
POSIX path, a directory flag (trailing ``/``) and the permission bits of the
original file in the upper half of ``external_attr``.
"""

from __future__ import annotations

import fnmatch
import io
import os
import stat
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import IO, Iterator, Sequence

DEFAULT_EXCLUDES: tuple[str, ...] = (
    ".git",
    "node_modules",
    ".env",
    "*.log",
    ".DS_Store",
    "Thumbs.db",
)

DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755


@dataclass(frozen=True)
class ArchiveEntry:
    """A single member of a deployment archive."""

    path: str
    is_dir: bool
    mode: int
    size: int
    info: zipfile.ZipInfo

    def open(self, archive: zipfile.ZipFile) -> IO[bytes]:
        return archive.open(self.info, "r")


def entry_mode(info: zipfile.ZipInfo) -> int:
    """Permission bits recorded for a zip member, with defaults for archives without them."""
    mode = stat.S_IMODE(info.external_attr >> 16) & 0o777
    if mode:
        return mode
    return DEFAULT_DIR_MODE if info.is_dir() else DEFAULT_FILE_MODE


def iter_entries(archive: zipfile.ZipFile) -> Iterator[ArchiveEntry]:
    for info in archive.infolist():
        yield ArchiveEntry(
            path=info.filename,
            is_dir=info.is_dir(),
            mode=entry_mode(info),
            size=info.file_size,
            info=info,
        )


def should_exclude(rel_path: str, patterns: Sequence[str] = DEFAULT_EXCLUDES) -> bool:
    """Return True when any component of ``rel_path`` matches an exclusion pattern."""
    parts = PurePosixPath(rel_path.replace(os.sep, "/")).parts
    return any(fnmatch.fnmatchcase(part, pattern) for part in parts for pattern in patterns)


def _write_tree(archive: zipfile.ZipFile, source: Path, exclude: Sequence[str]) -> None:
    for dirpath, dirnames, filenames in os.walk(source):
        current = Path(dirpath)
        rel_dir = current.relative_to(source)

        # Prune excluded directories so os.walk never descends into them
        dirnames[:] = sorted(
            d for d in dirnames if not should_exclude((rel_dir / d).as_posix(), exclude)
        )

        for d in dirnames:
            archive.write(current / d, (rel_dir / d).as_posix())

        for name in sorted(filenames):
            rel_path = (rel_dir / name).as_posix()
            if should_exclude(rel_path, exclude):
                continue
            full_path = current / name
            if not full_path.is_file():
                # Dangling symlinks, sockets, fifos
                continue
            archive.write(full_path, rel_path)


def build_archive(source_dir: Path | str, exclude: Sequence[str] = DEFAULT_EXCLUDES) -> bytes:
    """Package ``source_dir`` into an in-memory deflate zip.

    Args:
        source_dir: Directory whose contents become the archive root
        exclude: fnmatch patterns applied to every path component

    Returns:
        Archive bytes
    """
    source = Path(source_dir)
    if not source.is_dir():
        raise NotADirectoryError(f"Not a directory: {source}")

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        _write_tree(archive, source, exclude)
    return buf.getvalue()
