"""Glob and ignore-file pattern matching shared by the path validator and search tools.

Two glob flavours are provided:
- simple: ``*`` is any run of characters, ``?`` one character (filename filters)
- path-aware: ``**`` crosses directory separators, ``*`` stops at ``/``
  (directory listing filters)

Ignore-file matching is deliberately not a full gitignore implementation; it
covers the common cases (directory suffixes, wildcards, bare names).
"""

from __future__ import annotations

import posixpath
import re
from pathlib import Path

import structlog

logger = structlog.get_logger()

IGNORE_FILE_NAME = ".gitignore"

_DOUBLE_STAR = "\x00DOUBLESTAR\x00"


def _to_posix(path: str) -> str:
    return path.replace("\\", "/")


def compile_simple_pattern(pattern: str, *, case_insensitive: bool = False) -> re.Pattern[str]:
    """Translate a simple glob into an anchored regex."""
    body = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{body}$", re.IGNORECASE if case_insensitive else 0)


def compile_path_pattern(pattern: str, *, case_insensitive: bool = False) -> re.Pattern[str]:
    """Translate a path-aware glob into an anchored regex.

    ``**`` is swapped for a placeholder before single ``*`` substitution so the
    two never collide.
    """
    body = re.escape(_to_posix(pattern))
    body = body.replace(r"\*\*", _DOUBLE_STAR)
    body = body.replace(r"\*", "[^/]*")
    body = body.replace(_DOUBLE_STAR, ".*")
    body = body.replace(r"\?", ".")
    return re.compile(f"^{body}$", re.IGNORECASE if case_insensitive else 0)


def matches_simple_pattern(
    path: str, pattern: str, *, case_insensitive: bool = False
) -> bool:
    """Match a simple glob against the full relative path and its basename."""
    regex = compile_simple_pattern(pattern, case_insensitive=case_insensitive)
    posix = _to_posix(path)
    return bool(regex.match(posix) or regex.match(posixpath.basename(posix)))


def matches_path_pattern(
    path: str, pattern: str, *, case_insensitive: bool = False
) -> bool:
    """Match a path-aware glob against the full relative path and its basename."""
    regex = compile_path_pattern(pattern, case_insensitive=case_insensitive)
    posix = _to_posix(path)
    return bool(regex.match(posix) or regex.match(posixpath.basename(posix)))


def matches_ignore_pattern(path: str, patterns: list[str]) -> bool:
    """Return True if a project-relative path is matched by any ignore pattern."""
    posix = _to_posix(path)
    file_name = posixpath.basename(posix)

    for pattern in patterns:
        if not pattern or pattern.startswith("#"):
            continue

        if pattern.endswith("/"):
            if pattern[:-1] in posix:
                return True
        elif "*" in pattern or "?" in pattern:
            regex = compile_simple_pattern(pattern)
            if regex.match(file_name) or regex.match(posix):
                return True
        elif file_name == pattern or pattern in posix:
            return True

    return False


def parse_ignore_file(content: str) -> list[str]:
    """Split ignore-file content into patterns, dropping blanks and comments."""
    return [
        line.strip()
        for line in content.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]


def load_ignore_patterns(directory: Path) -> list[str]:
    """Load patterns from ``directory/.gitignore``. Missing or unreadable → []."""
    ignore_file = directory / IGNORE_FILE_NAME
    if not ignore_file.is_file():
        return []
    try:
        return parse_ignore_file(ignore_file.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("ignore_file_unreadable", path=str(ignore_file), error=str(e))
        return []


class IgnorePatternCache:
    """Per-directory cache of ignore patterns, invalidated on .gitignore mtime change."""

    def __init__(self) -> None:
        self._entries: dict[Path, tuple[int | None, list[str]]] = {}

    def get(self, directory: Path) -> list[str]:
        ignore_file = directory / IGNORE_FILE_NAME
        try:
            mtime: int | None = ignore_file.stat().st_mtime_ns
        except OSError:
            mtime = None

        cached = self._entries.get(directory)
        if cached is not None and cached[0] == mtime:
            return cached[1]

        patterns = load_ignore_patterns(directory) if mtime is not None else []
        self._entries[directory] = (mtime, patterns)
        return patterns
