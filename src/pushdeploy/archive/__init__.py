"""Deployment archive format: packaging on the client, safe extraction on the agent."""

from .codec import DEFAULT_EXCLUDES, ArchiveEntry, build_archive, iter_entries, should_exclude
from .extractor import safe_extract

__all__ = [
    "DEFAULT_EXCLUDES",
    "ArchiveEntry",
    "build_archive",
    "iter_entries",
    "should_exclude",
    "safe_extract",
]
