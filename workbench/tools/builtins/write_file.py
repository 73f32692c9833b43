from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from workbench.tools.base import BaseTool
from workbench.tools.responses import tool_error

if TYPE_CHECKING:
    from workbench.tools.context import ToolContext
    from workbench.tools.path_validator import PathValidator

logger = structlog.get_logger()


class WriteFileTool(BaseTool):
    """Create a new file. Existing files must go through edit_file."""

    def __init__(self, validator: PathValidator) -> None:
        self._validator = validator

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return (
            "Create a NEW file with the given content. Parent directories are "
            "created. Fails if the file already exists; use edit_file instead."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "Path of the new file, relative to the project root.",
                },
                "content": {
                    "type": "string",
                    "description": "Full content of the new file.",
                },
            },
            "required": ["file_path", "content"],
        }

    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        file_path = arguments.get("file_path", "")
        content = arguments.get("content", "")
        if not isinstance(content, str):
            return tool_error("content must be a string")

        check = self._validator.validate_path(file_path, "write to")
        if not check.valid:
            return tool_error(check.error)
        target = check.absolute_path

        if target.exists():
            return tool_error(
                f"File already exists: {file_path}. Use edit_file to modify existing files."
            )
        if self._validator.is_ignored(target):
            return tool_error(
                f"Access denied: Cannot write to gitignored path: "
                f"{self._validator.relative(target)}"
            )

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            size = target.stat().st_size
        except OSError as e:
            logger.exception("write_file_failed", file_path=file_path)
            return tool_error(f"Failed to write file: {e}")

        lines = len(content.split("\n"))
        logger.info("file_created", file_path=file_path, size=size, lines=lines)
        return {"file_path": file_path, "size": size, "lines": lines}
