"""Recursive project walk shared by find_files and grep."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from workbench.tools.patterns import matches_ignore_pattern

if TYPE_CHECKING:
    from workbench.tools.path_validator import PathValidator

logger = structlog.get_logger()


def walk_files(
    validator: PathValidator, directory: Path, *, include_ignored: bool
) -> Iterator[Path]:
    """Yield files under directory depth-first, in name order.

    The reserved directory is always skipped; ignored paths are skipped unless
    include_ignored. Symlinks are never followed or yielded, so the walk cannot
    leave the project root. Unreadable directories are skipped silently.
    """
    patterns = [] if include_ignored else validator.ignore_patterns()
    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name)
    except OSError as e:
        logger.debug("walk_directory_unreadable", directory=str(directory), error=str(e))
        return

    for entry in entries:
        path = Path(entry.path)
        if validator.is_reserved(path):
            continue
        if patterns and matches_ignore_pattern(validator.relative(path), patterns):
            continue
        try:
            if entry.is_dir(follow_symlinks=False):
                yield from walk_files(validator, path, include_ignored=include_ignored)
            elif entry.is_file(follow_symlinks=False):
                yield path
        except OSError:
            continue
