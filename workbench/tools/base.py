from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from workbench.tools.context import ToolContext


class BaseTool(ABC):
    """Abstract base class for agent tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name used in function calling."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON Schema describing the tool's input parameters."""
        ...

    @property
    def required_arguments(self) -> tuple[str, ...]:
        """Names listed under the schema's ``required`` key."""
        return tuple(self.parameters.get("required", ()))

    @abstractmethod
    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        """Execute the tool with decoded arguments and the per-call context.

        Returns a success payload, or an error payload carrying an ``error`` key.
        Expected failures are returned, not raised.
        """
        ...
