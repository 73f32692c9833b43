from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from workbench.agent.permissions import PermissionRequest
    from workbench.session.models import Message


class TurnState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_PERMISSION = "awaiting_permission"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class TranscriptUpdated:
    """Immutable snapshot of the transcript after a change."""

    messages: tuple[Message, ...]


@dataclass(frozen=True)
class StatusChanged:
    """Short progress text for the UI (e.g. "Thinking...")."""

    text: str
    state: TurnState


@dataclass(frozen=True)
class ToolCallInfo:
    """Notification that a tool is being called."""

    tool_name: str
    arguments: dict
    call_id: str


@dataclass(frozen=True)
class ToolDenied:
    """Notification that the user refused a tool call."""

    tool_name: str
    call_id: str
    message: str = ""


@dataclass(frozen=True)
class PermissionRequested:
    """The loop is suspended until ``request`` is granted or denied."""

    request: PermissionRequest


@dataclass(frozen=True)
class TurnFinished:
    state: TurnState
    iterations: int = 0


AgentEvent = (
    TranscriptUpdated
    | StatusChanged
    | ToolCallInfo
    | ToolDenied
    | PermissionRequested
    | TurnFinished
)
