from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from workbench.tools.base import BaseTool
from workbench.tools.patterns import matches_ignore_pattern, matches_path_pattern
from workbench.tools.responses import tool_error

if TYPE_CHECKING:
    from workbench.tools.context import ToolContext
    from workbench.tools.path_validator import PathValidator

logger = structlog.get_logger()

MAX_ENTRIES = 100
LINE_COUNT_SIZE_LIMIT = 1024 * 1024


def _count_lines(path: Path, size: int) -> int | None:
    if size > LINE_COUNT_SIZE_LIMIT:
        return None
    try:
        return len(path.read_text(encoding="utf-8").split("\n"))
    except (OSError, UnicodeDecodeError):
        return None


class ListFilesTool(BaseTool):
    """List one directory level with sizes and line counts."""

    def __init__(self, validator: PathValidator) -> None:
        self._validator = validator

    @property
    def name(self) -> str:
        return "list_files"

    @property
    def description(self) -> str:
        return (
            "List files and directories in one directory (not recursive). "
            "pattern filters files only, e.g. '*.py' or 'src/**/*.ts'."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "directory_path": {
                    "type": "string",
                    "description": "Directory relative to the project root. Defaults to '.'.",
                },
                "include_gitignored": {
                    "type": "boolean",
                    "description": "Also list paths matched by .gitignore.",
                },
                "pattern": {
                    "type": "string",
                    "description": "Glob applied to file paths; ** crosses directories.",
                },
            },
            "required": [],
        }

    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        directory_path = arguments.get("directory_path") or "."
        include_ignored = bool(arguments.get("include_gitignored", False))
        pattern = arguments.get("pattern")

        check = self._validator.for_directory(
            directory_path, "list", include_ignored=include_ignored
        )
        if not check.valid:
            return tool_error(check.error)
        directory = check.absolute_path

        patterns = [] if include_ignored else self._validator.ignore_patterns()
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            return tool_error(f"Failed to list files: {e}")

        files: list[dict] = []
        for entry in entries:
            path = Path(entry.path)
            if self._validator.is_reserved(path):
                continue
            rel = self._validator.relative(path)
            if patterns and matches_ignore_pattern(rel, patterns):
                continue
            try:
                # Links may point outside the root; read_file refuses those too.
                if entry.is_symlink():
                    continue
                if entry.is_dir(follow_symlinks=False):
                    files.append(
                        {
                            "name": entry.name,
                            "path": rel,
                            "type": "directory",
                            "size": None,
                            "lines": None,
                        }
                    )
                    continue
                if not entry.is_file(follow_symlinks=False):
                    continue
                size = entry.stat(follow_symlinks=False).st_size
            except OSError:
                continue
            # Directories stay visible so the caller knows where to look next.
            if pattern and not matches_path_pattern(rel, pattern):
                continue
            files.append(
                {
                    "name": entry.name,
                    "path": rel,
                    "type": "file",
                    "size": size,
                    "lines": _count_lines(path, size),
                }
            )

        total = len(files)
        result: dict = {
            "directory": directory_path,
            "count": min(total, MAX_ENTRIES),
            "total_found": total,
        }
        if total > MAX_ENTRIES:
            result["truncated"] = True
            result["message"] = (
                f"Found {total} files, showing first {MAX_ENTRIES}. "
                "Use a more specific pattern to narrow results."
            )
        result["files"] = files[:MAX_ENTRIES]
        return result
