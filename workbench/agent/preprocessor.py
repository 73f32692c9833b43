"""Validation of model-proposed tool calls before dispatch.

Each check either passes with a value or produces a synthetic tool message
answering the call, so a malformed call never reaches a tool and never leaves
the transcript with an unanswered id. Nothing here raises.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from workbench.infra.errors import ToolValidationError
from workbench.session.models import Message
from workbench.tools.context import ToolInvocation
from workbench.tools.responses import is_error_payload, serialize_payload, tool_error

logger = structlog.get_logger()

TOOL_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+(\.[a-zA-Z0-9_-]+)*$")


@dataclass(frozen=True)
class PreprocessResult:
    """Outcome of one preprocessing step.

    On success ``value`` carries the checked value (name or decoded args); on
    failure ``message`` is the synthetic tool message to append.
    """

    ok: bool
    value: Any = None
    message: Message | None = None


def _reject(
    name: str, tool_call_id: str, error: ToolValidationError
) -> PreprocessResult:
    return PreprocessResult(
        ok=False,
        message=Message.tool(
            name=name,
            tool_call_id=tool_call_id,
            content=serialize_payload(tool_error(str(error))),
        ),
    )


def validate_tool_name(name: str, tool_call_id: str) -> PreprocessResult:
    if isinstance(name, str) and TOOL_NAME_PATTERN.match(name) and ".." not in name:
        return PreprocessResult(ok=True, value=name)

    logger.warning("tool_name_rejected", tool_name=name, tool_call_id=tool_call_id)
    return _reject(
        name if isinstance(name, str) else "",
        tool_call_id,
        ToolValidationError(
            f'Invalid tool name format: "{name}". Tool names must contain only '
            "letters, numbers, underscores, hyphens and single dots between "
            "segments. Do NOT include parentheses or function call syntax."
        ),
    )


def parse_tool_arguments(name: str, raw: str | None, tool_call_id: str) -> PreprocessResult:
    """Decode the raw argument text into a dict.

    Empty text counts as ``{}``. Anything that decodes to a non-object
    (null, arrays, scalars) is rejected.
    """
    text = raw if raw is not None else ""
    if not text.strip():
        return PreprocessResult(ok=True, value={})

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(
            "tool_args_parse_failed",
            tool_name=name,
            error=str(e),
            raw_args=text[:200],
        )
        return _reject(
            name,
            tool_call_id,
            ToolValidationError(
                f"Invalid JSON in tool arguments: {e}. Raw arguments: {text}"
            ),
        )

    if not isinstance(decoded, dict):
        kind = "null" if decoded is None else type(decoded).__name__
        logger.warning("tool_args_not_object", tool_name=name, got=kind)
        return _reject(
            name,
            tool_call_id,
            ToolValidationError(
                f"Tool arguments must be a JSON object, got {kind}. Raw arguments: {text}"
            ),
        )

    return PreprocessResult(ok=True, value=decoded)


def check_required_arguments(
    name: str,
    args: dict[str, Any],
    required: Sequence[str],
    tool_call_id: str,
) -> PreprocessResult:
    missing = [field for field in required if field not in args]
    if not missing:
        return PreprocessResult(ok=True, value=args)
    logger.warning("tool_args_missing", tool_name=name, missing=missing)
    return _reject(
        name,
        tool_call_id,
        ToolValidationError(
            f"Missing required argument(s) for {name}: {', '.join(missing)}"
        ),
    )


def extract_tool_call_history(
    messages: Sequence[Message],
) -> tuple[tuple[ToolInvocation, ...], ToolInvocation | None]:
    """Successful tool invocations in transcript order, plus the latest one.

    A result counts as successful when it decodes to an object without an
    ``error`` key.
    """
    calls = tuple(
        ToolInvocation(name=m.name, args=dict(m.tool_args or {}))
        for m in messages
        if m.role == "tool"
        and m.name
        and not is_error_payload(m.content)
    )
    return calls, (calls[-1] if calls else None)
