from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from workbench.tools.base import BaseTool
from workbench.tools.responses import tool_error

if TYPE_CHECKING:
    from workbench.tools.context import ToolContext
    from workbench.tools.path_validator import PathValidator

logger = structlog.get_logger()

MAX_READ_BYTES = 256 * 1024
LINE_WINDOW = 300


class ReadFileTool(BaseTool):
    """Read a project file in 300-line windows, or whole for a later edit."""

    def __init__(self, validator: PathValidator) -> None:
        self._validator = validator

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return (
            "Read a file in the project. Returns up to 300 lines starting at "
            "offset (0-indexed; -1 for the last 300 lines). Set read_for_write=true "
            "to get the whole file, which is required before edit_file."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "Path relative to the project root, e.g. 'src/app.py'.",
                },
                "offset": {
                    "type": "integer",
                    "description": "First line to return (0-indexed). -1 returns the last window.",
                },
                "read_for_write": {
                    "type": "boolean",
                    "description": "Return the entire file (files under 256KB only).",
                },
            },
            "required": ["file_path"],
        }

    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        file_path = arguments.get("file_path", "")
        offset = arguments.get("offset", 0)
        read_for_write = bool(arguments.get("read_for_write", False))
        if not isinstance(offset, int) or isinstance(offset, bool):
            return tool_error(f"offset must be an integer, got {offset!r}")

        check = self._validator.for_file(file_path, "read files")
        if not check.valid:
            return tool_error(check.error)

        try:
            content = check.absolute_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.exception("read_file_failed", file_path=file_path)
            return tool_error(f"Failed to read file: {e}")

        # Empty file has zero lines.
        lines = content.split("\n") if content else []
        total = len(lines)
        size = check.stats.st_size

        if read_for_write:
            if size >= MAX_READ_BYTES:
                return tool_error(
                    f"File too large for editing ({size} bytes, max {MAX_READ_BYTES} bytes)",
                    file_path=file_path,
                    size=size,
                    total_lines=total,
                )
            return {
                "file_path": file_path,
                "content": content,
                "size": size,
                "total_lines": total,
                "read_for_write": True,
            }

        start = offset
        if offset == -1 or offset >= total or offset < 0:
            start = max(0, total - LINE_WINDOW)
        end = min(start + LINE_WINDOW, total)
        window = "\n".join(lines[start:end])

        window_size = len(window.encode("utf-8"))
        if window_size >= MAX_READ_BYTES:
            return tool_error(
                f"Content exceeds 256KB limit ({window_size} bytes). Likely a minified file.",
                file_path=file_path,
                total_lines=total,
                attempted_lines=end - start,
            )

        return {
            "file_path": file_path,
            "content": window,
            "offset": start,
            "lines_returned": end - start,
            "total_lines": total,
            "size": window_size,
        }
