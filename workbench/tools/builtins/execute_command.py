from __future__ import annotations

from typing import TYPE_CHECKING

from workbench.config.settings import CommandSettings
from workbench.tools.base import BaseTool
from workbench.tools.responses import tool_error
from workbench.tools.sandbox import run_command

if TYPE_CHECKING:
    from workbench.tools.context import ToolContext
    from workbench.tools.path_validator import PathValidator


class ExecuteCommandTool(BaseTool):
    """Run a shell command at the project root inside the sandbox."""

    def __init__(
        self, validator: PathValidator, settings: CommandSettings | None = None
    ) -> None:
        self._validator = validator
        self._settings = settings or CommandSettings()

    @property
    def name(self) -> str:
        return "execute_command"

    @property
    def description(self) -> str:
        return (
            "Execute a shell command in the project root and return stdout, "
            "stderr and the exit code. Long-running commands are killed after "
            "timeout_ms."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "Shell command line."},
                "timeout_ms": {
                    "type": "integer",
                    "description": (
                        f"Timeout in milliseconds (default "
                        f"{self._settings.default_timeout_ms}, max "
                        f"{self._settings.max_timeout_ms})."
                    ),
                },
            },
            "required": ["command"],
        }

    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        command = arguments.get("command")
        if not isinstance(command, str) or not command.strip():
            return tool_error("command must be a non-empty string")

        timeout_ms = arguments.get("timeout_ms", self._settings.default_timeout_ms)
        if not isinstance(timeout_ms, int) or isinstance(timeout_ms, bool) or timeout_ms <= 0:
            return tool_error(f"timeout_ms must be a positive integer, got {timeout_ms!r}")
        timeout_ms = min(timeout_ms, self._settings.max_timeout_ms)

        result = await run_command(
            command,
            cwd=self._validator.root,
            timeout_ms=timeout_ms,
            cancel=context.cancel if context is not None else None,
            max_output_bytes=self._settings.max_output_bytes,
            abort_grace_ms=self._settings.abort_grace_ms,
        )
        return result.to_payload()
