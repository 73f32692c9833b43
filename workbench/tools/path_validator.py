"""Security boundary for every filesystem-touching tool.

All checks are anchored on an explicit project root (never the process cwd).
Low-level checks raise SecurityError; the composed validators (validate_path,
for_file, for_directory) convert those into a uniform PathCheck so tools can
return the error as an ordinary payload.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import structlog

from workbench.config.settings import CONFIG_DIR_NAME
from workbench.infra.errors import SecurityError
from workbench.tools.patterns import IgnorePatternCache, matches_ignore_pattern

logger = structlog.get_logger()


@dataclass(frozen=True)
class PathCheck:
    """Result of a composed path validation."""

    valid: bool
    absolute_path: Path | None = None
    stats: os.stat_result | None = None
    error: str | None = None


class PathValidator:
    """Centralized path validation shared by file and search tools."""

    def __init__(self, root: Path, *, reserved_dir: str = CONFIG_DIR_NAME) -> None:
        self._root = root.resolve()
        self._reserved_dir = reserved_dir
        self._ignore_cache = IgnorePatternCache()

    @property
    def root(self) -> Path:
        return self._root

    def is_within_root(self, path: Path) -> bool:
        return path == self._root or self._root in path.parents

    def relative(self, path: Path) -> str:
        """Project-relative display path ('.' for the root itself)."""
        rel = path.relative_to(self._root)
        return rel.as_posix() if rel.parts else "."

    def resolve(self, input_path: str, operation: str) -> Path:
        """Resolve input against the root; raise SecurityError if it escapes.

        Symlinks are followed, so a link inside the project pointing outside is
        rejected as well.
        """
        if not isinstance(input_path, str):
            raise SecurityError(f"Access denied: Cannot {operation} a non-string path")
        candidate = (self._root / input_path).resolve()
        if not self.is_within_root(candidate):
            logger.warning(
                "path_escape_blocked",
                input_path=input_path,
                operation=operation,
            )
            raise SecurityError(
                f"Access denied: Cannot {operation} outside the project root"
            )
        return candidate

    def is_reserved(self, path: Path) -> bool:
        if not self.is_within_root(path):
            return False
        parts = path.relative_to(self._root).parts
        return bool(parts) and parts[0] == self._reserved_dir

    def block_reserved_dir(self, path: Path, operation: str) -> None:
        """Reject the reserved configuration directory and everything under it."""
        if self.is_reserved(path):
            logger.warning("reserved_dir_blocked", operation=operation)
            raise SecurityError(
                f"Access denied: Cannot {operation} {self._reserved_dir} "
                "configuration directory"
            )

    def ignore_patterns(self, directory: Path | None = None) -> list[str]:
        return self._ignore_cache.get(directory or self._root)

    def is_ignored(self, path: Path) -> bool:
        return matches_ignore_pattern(self.relative(path), self.ignore_patterns())

    def check_ignore_access(
        self, path: Path, include_ignored: bool, operation: str
    ) -> None:
        """Reject paths matched by the project .gitignore unless explicitly included."""
        if include_ignored:
            return
        if self.is_ignored(path):
            raise SecurityError(
                f"Access denied: Cannot {operation} gitignored path: {self.relative(path)}"
            )

    def validate_path(self, input_path: str, operation: str) -> PathCheck:
        """Containment and reserved-directory checks only; the path may not exist."""
        try:
            absolute = self.resolve(input_path, operation)
            self.block_reserved_dir(absolute, operation)
        except SecurityError as e:
            return PathCheck(valid=False, error=str(e))
        return PathCheck(valid=True, absolute_path=absolute)

    def for_file(
        self, input_path: str, operation: str, *, include_ignored: bool = False
    ) -> PathCheck:
        return self._validate_resource(input_path, operation, "file", include_ignored)

    def for_directory(
        self, input_path: str, operation: str, *, include_ignored: bool = False
    ) -> PathCheck:
        return self._validate_resource(
            input_path, operation, "directory", include_ignored
        )

    def _validate_resource(
        self,
        input_path: str,
        operation: str,
        expected: Literal["file", "directory"],
        include_ignored: bool,
    ) -> PathCheck:
        check = self.validate_path(input_path, operation)
        if not check.valid:
            return check
        absolute = check.absolute_path

        if not absolute.exists():
            resource = "File" if expected == "file" else "Directory"
            return PathCheck(valid=False, error=f"{resource} not found: {input_path}")

        stats = absolute.stat()
        is_expected = absolute.is_file() if expected == "file" else absolute.is_dir()
        if not is_expected:
            return PathCheck(
                valid=False,
                stats=stats,
                error=f"Path is not a {expected}: {input_path}",
            )

        # The root itself is never ignored.
        if absolute != self._root:
            try:
                self.check_ignore_access(absolute, include_ignored, operation)
            except SecurityError as e:
                return PathCheck(valid=False, error=str(e))

        return PathCheck(valid=True, absolute_path=absolute, stats=stats)
