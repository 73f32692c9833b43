from __future__ import annotations

from typing import TYPE_CHECKING

from workbench.tools.builtins.context_write import ContextWriteTool
from workbench.tools.builtins.delete_file import DeleteFileTool
from workbench.tools.builtins.edit_file import EditFileTool
from workbench.tools.builtins.execute_command import ExecuteCommandTool
from workbench.tools.builtins.find_files import FindFilesTool
from workbench.tools.builtins.grep import GrepTool
from workbench.tools.builtins.list_files import ListFilesTool
from workbench.tools.builtins.manage_todos import ManageTodosTool
from workbench.tools.builtins.read_file import ReadFileTool
from workbench.tools.builtins.write_file import WriteFileTool
from workbench.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from workbench.config.settings import CommandSettings
    from workbench.memory.notes import ProjectNotes
    from workbench.memory.tasks import TaskList
    from workbench.tools.path_validator import PathValidator


def register_builtins(
    registry: ToolRegistry,
    validator: PathValidator,
    notes: ProjectNotes,
    tasks: TaskList,
    command_settings: CommandSettings | None = None,
) -> None:
    """Register all built-in tools with the registry.

    File and search tools share one PathValidator so they agree on the
    project root, the reserved directory and the ignore patterns.
    """
    registry.register(ReadFileTool(validator))
    registry.register(WriteFileTool(validator))
    registry.register(EditFileTool(validator))
    registry.register(DeleteFileTool(validator))
    registry.register(ListFilesTool(validator))
    registry.register(FindFilesTool(validator))
    registry.register(GrepTool(validator))
    registry.register(ExecuteCommandTool(validator, command_settings))
    registry.register(ManageTodosTool(tasks))
    registry.register(ContextWriteTool(notes))
