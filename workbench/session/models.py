from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["system", "user", "assistant", "tool"]

VALID_ROLES: frozenset[str] = frozenset({"system", "user", "assistant", "tool"})


@dataclass(frozen=True)
class ToolCall:
    """A single tool invocation proposed by the model. arguments is raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"

    def to_api(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class UsageInfo:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class Message:
    """One transcript entry.

    tool_calls is set on assistant messages only; name, tool_call_id and
    tool_args on tool messages only. tool_args (decoded arguments, kept for
    display and tool-history extraction) and usage are never sent to the API.
    """

    role: Role
    content: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    name: str | None = None
    tool_call_id: str | None = None
    tool_args: dict[str, Any] | None = None
    usage: UsageInfo | None = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls,
        content: str | None,
        tool_calls: tuple[ToolCall, ...] | list[ToolCall] = (),
        usage: UsageInfo | None = None,
    ) -> Message:
        return cls(
            role="assistant",
            content=content,
            tool_calls=tuple(tool_calls),
            usage=usage,
        )

    @classmethod
    def tool(
        cls,
        *,
        name: str,
        tool_call_id: str,
        content: str,
        tool_args: dict[str, Any] | None = None,
    ) -> Message:
        return cls(
            role="tool",
            content=content,
            name=name,
            tool_call_id=tool_call_id,
            tool_args=tool_args if tool_args is not None else {},
        )

    def to_api(self) -> dict[str, Any]:
        """Convert to OpenAI chat format (display-only fields dropped)."""
        msg: dict[str, Any] = {"role": self.role, "content": self.content or ""}
        if self.role == "assistant" and self.tool_calls:
            msg["tool_calls"] = [tc.to_api() for tc in self.tool_calls]
        if self.role == "tool":
            msg["tool_call_id"] = self.tool_call_id
            if self.name:
                msg["name"] = self.name
        return msg


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
