from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from workbench.session.models import Message

if TYPE_CHECKING:
    from workbench.memory.notes import ProjectNotes
    from workbench.memory.tasks import TaskList
    from workbench.tools.registry import ToolRegistry

logger = structlog.get_logger()


class PromptBuilder:
    """Assembles the live system context sent ahead of the transcript.

    Layers, each a separate system message and each skipped when empty:
    1. Base prompt (identity, working rules, available tools)
    2. Persistent memories
    3. Project context
    4. Current tasks
    """

    def __init__(
        self,
        notes: ProjectNotes,
        tasks: TaskList,
        tool_registry: ToolRegistry | None = None,
        *,
        base_prompt: str | None = None,
    ) -> None:
        self._notes = notes
        self._tasks = tasks
        self._tool_registry = tool_registry
        self._base_prompt = base_prompt

    def build(self) -> list[Message]:
        layers = [
            self._layer_base(),
            self._layer_memories(),
            self._layer_project_context(),
            self._layer_tasks(),
        ]
        return [Message.system(layer) for layer in layers if layer]

    def _layer_base(self) -> str:
        if self._base_prompt is not None:
            base = self._base_prompt
        else:
            base = (
                "You are a coding assistant working inside the user's project. "
                "Use the provided tools to inspect and change files and to run "
                "commands. Paths are relative to the project root. Read a file "
                "with read_for_write=true before editing it. If a tool result "
                "says permission was denied, stop and wait for the user."
            )
        if self._tool_registry and self._tool_registry.names():
            base += "\n\nAvailable tools: " + ", ".join(self._tool_registry.names())
        return base

    def _layer_memories(self) -> str:
        memories = self._notes.load_memories()
        if not memories:
            return ""
        logger.debug("memories_injected", count=len(memories))
        return "## Persistent Memories\n\n" + "\n".join(f"- {m}" for m in memories)

    def _layer_project_context(self) -> str:
        context = self._notes.load_context()
        if not context:
            return ""
        return f"## Project Context\n\n{context}"

    def _layer_tasks(self) -> str:
        if not len(self._tasks):
            return ""
        return f"## Current Tasks\n\n{self._tasks.render()}"
