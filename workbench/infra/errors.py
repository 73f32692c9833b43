"""Custom exception hierarchy for Workbench.

All application-specific exceptions inherit from WorkbenchError,
which carries an error code that tool payloads and the terminal
channel surface to the user.
"""

from __future__ import annotations


class WorkbenchError(Exception):
    """Base exception for all Workbench errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ConfigError(WorkbenchError):
    """Errors loading or saving project configuration."""

    def __init__(self, message: str, *, code: str = "CONFIG_ERROR") -> None:
        super().__init__(message, code=code)


class AgentError(WorkbenchError):
    """Errors in the agent runtime."""

    def __init__(self, message: str, *, code: str = "AGENT_ERROR") -> None:
        super().__init__(message, code=code)


class LLMError(AgentError):
    """Errors from LLM API calls (timeouts, rate limits, failures)."""

    def __init__(self, message: str, *, code: str = "LLM_ERROR") -> None:
        super().__init__(message, code=code)


class TurnAborted(AgentError):
    """The active turn observed its cancellation signal."""

    def __init__(self, message: str = "The operation was aborted") -> None:
        super().__init__(message, code="ABORTED")


class PermissionPendingError(AgentError):
    """A second permission request was opened while one is outstanding."""

    def __init__(self, message: str = "A permission request is already pending") -> None:
        super().__init__(message, code="PERMISSION_PENDING")


class ToolError(WorkbenchError):
    """Errors during tool execution."""

    def __init__(self, message: str, *, code: str = "TOOL_ERROR") -> None:
        super().__init__(message, code=code)


class ToolValidationError(ToolError):
    """Malformed tool name or arguments proposed by the model."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="VALIDATION_ERROR")


class SecurityError(ToolError):
    """Path escapes the project root, targets the reserved directory or an ignored path."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="SECURITY_ERROR")


class SpawnError(ToolError):
    """The OS failed to start a process."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="SPAWN_ERROR")
