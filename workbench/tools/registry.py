from __future__ import annotations

from collections.abc import Collection
from typing import Any

import structlog

from workbench.tools.base import BaseTool
from workbench.tools.context import ToolContext
from workbench.tools.responses import serialize_payload, tool_error

logger = structlog.get_logger()


class ToolRegistry:
    """Registry for agent tools. Provides lookup, schemas and serialized dispatch."""

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool. Raises ValueError if name already registered."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.info("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name. Returns None if not found."""
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def get_tools_schema(self, names: Collection[str] | None = None) -> list[dict]:
        """Return tools in OpenAI function calling format, optionally only the named ones.

        Output format:
        [{"type": "function", "function": {"name": ..., "description": ..., "parameters": ...}}]
        """
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in self._tools.values()
            if names is None or tool.name in names
        ]

    async def execute(
        self, name: str, arguments: dict[str, Any], context: ToolContext
    ) -> str:
        """Dispatch to a tool and return its result as JSON text.

        Unknown tools and exceptions escaping a tool become error payloads so the
        transcript always receives a response.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("unknown_tool", tool_name=name)
            return serialize_payload(tool_error(f"Unknown tool: {name}"))

        try:
            result = await tool.execute(arguments, context)
        except Exception as e:
            logger.exception("tool_execution_failed", tool_name=name)
            return serialize_payload(tool_error(f"Tool execution failed: {e}"))

        logger.info("tool_executed", tool_name=name, failed="error" in result)
        return serialize_payload(result)
