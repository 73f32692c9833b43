from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolInvocation:
    """A prior successful tool call: its name and decoded arguments."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolContext:
    """Runtime context injected into tool execution by AgentLoop.

    Rebuilt from the transcript for every tool call; tools read it but never
    mutate it. all_tool_calls lists successful invocations in transcript
    order, last_tool_call is the most recent of them. cancel is the turn's
    shared cancellation signal (None outside a turn).
    """

    all_tool_calls: tuple[ToolInvocation, ...] = ()
    last_tool_call: ToolInvocation | None = None
    cancel: asyncio.Event | None = field(default=None, compare=False)

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()
