from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from workbench.tools.base import BaseTool
from workbench.tools.responses import tool_error

if TYPE_CHECKING:
    from workbench.tools.context import ToolContext
    from workbench.tools.path_validator import PathValidator

logger = structlog.get_logger()


class DeleteFileTool(BaseTool):
    """Delete a single file. Directories are refused."""

    def __init__(self, validator: PathValidator) -> None:
        self._validator = validator

    @property
    def name(self) -> str:
        return "delete_file"

    @property
    def description(self) -> str:
        return "Delete a file in the project. Directories cannot be deleted."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "File to delete, relative to the project root.",
                },
            },
            "required": ["file_path"],
        }

    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        file_path = arguments.get("file_path", "")

        # Ignored files may be deleted; the result reports it instead.
        check = self._validator.for_file(file_path, "delete files", include_ignored=True)
        if not check.valid:
            return tool_error(check.error)
        target = check.absolute_path
        was_ignored = self._validator.is_ignored(target)

        try:
            target.unlink()
        except OSError as e:
            logger.exception("delete_file_failed", file_path=file_path)
            return tool_error(f"Failed to delete file: {e}")

        logger.warning("file_deleted", file_path=file_path, was_gitignored=was_ignored)
        return {"file_path": file_path, "deleted": True, "was_gitignored": was_ignored}
