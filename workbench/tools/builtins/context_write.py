from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from workbench.memory.notes import ProjectNotes
from workbench.tools.base import BaseTool
from workbench.tools.responses import tool_error

if TYPE_CHECKING:
    from workbench.tools.context import ToolContext

logger = structlog.get_logger()


class ContextWriteTool(BaseTool):
    """Overwrite the project context note (context.md in the reserved directory)."""

    def __init__(self, notes: ProjectNotes) -> None:
        self._notes = notes

    @property
    def name(self) -> str:
        return "context_write"

    @property
    def description(self) -> str:
        return (
            "Write the project context summary (structure, conventions, how to "
            "build and test). It is included in every future conversation."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "content": {
                    "type": "string",
                    "description": "Markdown content replacing the current project context.",
                },
            },
            "required": ["content"],
        }

    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        content = arguments.get("content")
        if not isinstance(content, str):
            return tool_error("content must be a string")
        try:
            path = self._notes.write_context(content)
            size = path.stat().st_size
        except OSError as e:
            logger.exception("context_write_failed")
            return tool_error(f"Failed to write context file: {e}")
        return {
            "file": f"{path.parent.name}/{path.name}",
            "lines": len(content.split("\n")),
            "size": size,
        }
