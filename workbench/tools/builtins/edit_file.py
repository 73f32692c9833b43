from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from workbench.infra.errors import SecurityError
from workbench.tools.base import BaseTool
from workbench.tools.responses import tool_error

if TYPE_CHECKING:
    from pathlib import Path

    from workbench.tools.context import ToolContext
    from workbench.tools.path_validator import PathValidator

logger = structlog.get_logger()


class EditFileTool(BaseTool):
    """Edit an existing file by unique search/replace or full replacement.

    The file must have been read with read_for_write=true earlier in the
    conversation; the proof is taken from ToolContext.all_tool_calls.
    """

    def __init__(self, validator: PathValidator) -> None:
        self._validator = validator

    @property
    def name(self) -> str:
        return "edit_file"

    @property
    def description(self) -> str:
        return (
            "Edit an existing file. Either replace old_content (must occur exactly "
            "once) with new_content, or set replace_full=true and pass full_content. "
            "Read the file with read_for_write=true first."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "file_path": {"type": "string", "description": "File to edit."},
                "old_content": {
                    "type": "string",
                    "description": "Exact text to replace (search/replace mode).",
                },
                "new_content": {
                    "type": "string",
                    "description": "Replacement text (search/replace mode).",
                },
                "replace_full": {
                    "type": "boolean",
                    "description": "Replace the whole file with full_content.",
                },
                "full_content": {
                    "type": "string",
                    "description": "New file content when replace_full=true.",
                },
            },
            "required": ["file_path"],
        }

    def _was_read_for_write(self, target: Path, context: ToolContext | None) -> bool:
        if context is None:
            return False
        for call in context.all_tool_calls:
            if call.name != "read_file" or not call.args.get("read_for_write"):
                continue
            try:
                read_path = self._validator.resolve(call.args.get("file_path", ""), "read")
            except SecurityError:
                continue
            if read_path == target:
                return True
        return False

    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        file_path = arguments.get("file_path", "")
        old_content = arguments.get("old_content")
        new_content = arguments.get("new_content")
        replace_full = bool(arguments.get("replace_full", False))
        full_content = arguments.get("full_content")

        check = self._validator.for_file(file_path, "edit files")
        if not check.valid:
            return tool_error(check.error)
        target = check.absolute_path

        if context is None or not context.all_tool_calls:
            return tool_error(
                "Cannot edit file: No tool calls found in conversation. You must "
                "read the file with read_for_write=true before editing."
            )
        if not self._was_read_for_write(target, context):
            return tool_error(
                f'Cannot edit file: "{file_path}" has not been read with '
                "read_for_write=true in this conversation. You must read the file "
                "before editing it."
            )

        if replace_full:
            if full_content is None:
                return tool_error(
                    "Invalid parameters: replace_full=true requires full_content to be provided."
                )
            if old_content or new_content:
                return tool_error(
                    "Invalid parameters: When replace_full=true, old_content and "
                    "new_content must be empty."
                )
            updated = full_content
            mode = "full_replace"
        else:
            if old_content is None or new_content is None:
                return tool_error(
                    "Invalid parameters: Search/replace mode requires both "
                    "old_content and new_content."
                )
            if full_content:
                return tool_error(
                    "Invalid parameters: full_content should only be used with replace_full=true."
                )
            try:
                current = target.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                return tool_error(f"Failed to edit file: {e}")

            occurrences = current.count(old_content) if old_content else 0
            if occurrences == 0:
                return tool_error(
                    "Search string not found in file. Make sure old_content exactly "
                    "matches the text you want to replace."
                )
            if occurrences > 1:
                return tool_error(
                    f"Ambiguous replacement: old_content appears {occurrences} times "
                    "in the file. Please make old_content more specific to match "
                    "exactly once."
                )
            updated = current.replace(old_content, new_content, 1)
            mode = "search_replace"

        try:
            target.write_text(updated, encoding="utf-8")
            size = target.stat().st_size
        except OSError as e:
            logger.exception("edit_file_failed", file_path=file_path)
            return tool_error(f"Failed to edit file: {e}")

        lines = len(updated.split("\n"))
        logger.info("file_edited", file_path=file_path, mode=mode, size=size)
        return {"file_path": file_path, "mode": mode, "size": size, "lines": lines}
