"""Extraction of deployment archives into a workspace."""

from __future__ import annotations

import os
import shutil
import zipfile
import zlib
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import List, Tuple

import structlog

from pushdeploy.archive.codec import ArchiveEntry, iter_entries
from pushdeploy.core.exceptions import ArchiveError, UnsafeArchiveEntryError

logger = structlog.get_logger()


def resolve_entry_path(base: Path, entry_name: str) -> Path:
    """Return the canonical output path for ``entry_name`` under ``base``.

    ``base`` must already be canonical. Raises UnsafeArchiveEntryError unless
    the result lies strictly inside ``base``.
    """
    posix = PurePosixPath(entry_name)
    windows = PureWindowsPath(entry_name)
    if not entry_name or posix.is_absolute() or windows.is_absolute() or windows.drive:
        raise UnsafeArchiveEntryError(entry_name)
    if ".." in posix.parts or ".." in windows.parts:
        raise UnsafeArchiveEntryError(entry_name)

    target = (base / posix).resolve()
    if target == base or not target.is_relative_to(base):
        raise UnsafeArchiveEntryError(entry_name)
    return target


def _write_file(archive: zipfile.ZipFile, entry: ArchiveEntry, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, entry.mode)
    with os.fdopen(fd, "wb") as dst, entry.open(archive) as src:
        shutil.copyfileobj(src, dst)
    os.chmod(target, entry.mode)


def safe_extract(archive_path: Path, dest_dir: Path) -> List[Path]:
    """Extract ``archive_path`` into ``dest_dir``, refusing any entry that escapes it.

    Directory permissions are applied once every file is written, deepest
    directory first, so restrictive directory modes cannot block their own
    contents. A failure leaves whatever was already extracted in place.

    Args:
        archive_path: Zip file to extract
        dest_dir: Destination root (created if missing)

    Returns:
        Paths written, in archive order

    Raises:
        UnsafeArchiveEntryError: An entry resolves outside ``dest_dir``
        ArchiveError: The archive is corrupt or a write failed
    """
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        base = dest_dir.resolve()
    except OSError as exc:
        raise ArchiveError(f"Failed to create extraction directory: {exc}") from exc

    written: List[Path] = []
    directories: List[Tuple[Path, int]] = []

    try:
        with zipfile.ZipFile(archive_path, "r") as archive:
            for entry in iter_entries(archive):
                target = resolve_entry_path(base, entry.path)
                if entry.is_dir:
                    target.mkdir(parents=True, exist_ok=True)
                    directories.append((target, entry.mode))
                else:
                    _write_file(archive, entry, target)
                written.append(target)

        for target, mode in sorted(directories, key=lambda item: len(item[0].parts), reverse=True):
            os.chmod(target, mode)
    except UnsafeArchiveEntryError:
        logger.warning("Rejected unsafe archive entry", archive=str(archive_path), extracted=len(written))
        raise
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"Invalid archive: {exc}") from exc
    except (OSError, RuntimeError, ValueError, EOFError, zlib.error) as exc:
        raise ArchiveError(f"Failed to extract archive: {exc}") from exc

    logger.info("Archive extracted", archive=str(archive_path), entries=len(written))
    return written
