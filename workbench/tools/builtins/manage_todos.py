from __future__ import annotations

from typing import TYPE_CHECKING

from workbench.memory.tasks import TaskList, TodoItem
from workbench.tools.base import BaseTool
from workbench.tools.responses import tool_error

if TYPE_CHECKING:
    from workbench.tools.context import ToolContext


class ManageTodosTool(BaseTool):
    """Replace the session's task list. The list is shown in the system context."""

    def __init__(self, tasks: TaskList) -> None:
        self._tasks = tasks

    @property
    def name(self) -> str:
        return "manage_todos"

    @property
    def description(self) -> str:
        return (
            "Track progress on multi-step work. Pass the complete todo list every "
            "time; it replaces the previous one."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "todos": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "task": {"type": "string"},
                            "completed": {"type": "boolean"},
                        },
                        "required": ["task", "completed"],
                    },
                },
            },
            "required": ["todos"],
        }

    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        todos = arguments.get("todos")
        if not isinstance(todos, list):
            return tool_error("todos must be an array")

        items: list[TodoItem] = []
        for todo in todos:
            if (
                not isinstance(todo, dict)
                or not isinstance(todo.get("task"), str)
                or not isinstance(todo.get("completed"), bool)
            ):
                return tool_error(
                    'Each todo must have a string "task" and boolean "completed" field'
                )
            items.append(TodoItem(task=todo["task"], completed=todo["completed"]))

        self._tasks.replace(items)
        return {"success": True, "count": len(items)}
