"""Transcript validation and repair.

The chat API rejects a request when an assistant message announces tool calls
that are never answered. Interrupted turns, crashes and history edits can
leave such gaps behind, so the transcript is checked before every model call
and healed once before every turn.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from workbench.session.models import VALID_ROLES, Message, ValidationResult
from workbench.tools.responses import serialize_payload, tool_error

logger = structlog.get_logger()

ORPHANED_TOOL_CALL_ERROR = (
    "Tool call was orphaned (no response was recorded). "
    "This has been automatically resolved."
)
ABORTED_TOOL_CALL_ERROR = "Operation aborted by user"
INTERRUPTED_NOTE = "[Request interrupted by user]\n"


def validate_messages(messages: Sequence[Message]) -> ValidationResult:
    """Single-pass structural check of a transcript.

    Errors make the transcript unsendable; warnings are reported but tolerated.
    All unanswered tool calls are collected into one error at the end.
    """
    errors: list[str] = []
    warnings: list[str] = []
    pending: dict[str, str] = {}
    seen_non_system = False
    previous_role: str | None = None

    for i, msg in enumerate(messages):
        role = getattr(msg, "role", None)
        if not role:
            errors.append(f"Message {i}: missing role")
            previous_role = None
            continue
        if role not in VALID_ROLES:
            errors.append(f"Message {i}: unknown role '{role}'")
            previous_role = role
            continue

        if role == "system":
            if not msg.content:
                errors.append(f"Message {i}: system message without content")
            if seen_non_system:
                warnings.append(
                    f"Message {i}: system message after conversation start"
                )
        else:
            seen_non_system = True

        if role == "user":
            if previous_role == "user":
                errors.append(f"Message {i}: consecutive user messages")
            if not msg.content or not msg.content.strip():
                errors.append(f"Message {i}: user message has empty content")

        elif role == "assistant" and msg.tool_calls:
            ids_in_message: set[str] = set()
            for j, call in enumerate(msg.tool_calls):
                if not call.id:
                    errors.append(f"Message {i}: tool call {j} has no id")
                    continue
                if call.id in ids_in_message:
                    errors.append(
                        f"Message {i}: duplicate tool call id '{call.id}'"
                    )
                    continue
                if not call.name:
                    errors.append(
                        f"Message {i}: tool call '{call.id}' has no function name"
                    )
                ids_in_message.add(call.id)
                pending[call.id] = call.name

        elif role == "tool":
            if not msg.name:
                errors.append(f"Message {i}: tool message without name")
            if not msg.tool_call_id:
                errors.append(f"Message {i}: tool message without tool_call_id")
            elif msg.tool_call_id in pending:
                del pending[msg.tool_call_id]
            else:
                warnings.append(
                    f"Message {i}: tool result for unknown or already answered "
                    f"call '{msg.tool_call_id}'"
                )

        previous_role = role

    if pending:
        errors.append(
            "Tool calls without responses: " + ", ".join(sorted(pending))
        )

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def _unanswered_by_index(messages: Sequence[Message]) -> dict[int, list[tuple[str, str]]]:
    """Map assistant index -> [(call_id, tool_name)] for calls never answered."""
    announced: dict[str, tuple[str, int]] = {}
    for i, msg in enumerate(messages):
        if msg.role == "assistant":
            for call in msg.tool_calls:
                if call.id:
                    announced[call.id] = (call.name, i)
        elif msg.role == "tool" and msg.tool_call_id:
            announced.pop(msg.tool_call_id, None)

    by_index: dict[int, list[tuple[str, str]]] = {}
    for call_id, (name, index) in announced.items():
        by_index.setdefault(index, []).append((call_id, name))
    return by_index


def heal_orphaned_tool_calls(messages: Sequence[Message]) -> list[Message]:
    """Answer every orphaned tool call with a synthetic error result.

    The results are spliced directly after the announcing assistant message.
    Indices are processed in descending order so earlier splices never shift
    later ones. Applying the healer twice equals applying it once.
    """
    healed = list(messages)
    orphans = _unanswered_by_index(healed)
    if not orphans:
        return healed

    for index in sorted(orphans, reverse=True):
        synthetic = [
            Message.tool(
                name=name,
                tool_call_id=call_id,
                content=serialize_payload(tool_error(ORPHANED_TOOL_CALL_ERROR)),
            )
            for call_id, name in orphans[index]
        ]
        # Skip past any results that already answer this message.
        insert_at = index + 1
        while insert_at < len(healed) and healed[insert_at].role == "tool":
            insert_at += 1
        healed[insert_at:insert_at] = synthetic

    logger.warning(
        "orphaned_tool_calls_healed",
        count=sum(len(v) for v in orphans.values()),
    )
    return healed


def heal_aborted_turn(messages: Sequence[Message]) -> list[Message]:
    """Close out an interrupted turn.

    The most recent assistant message's unanswered calls get an abort result,
    then an assistant note records the interruption.
    """
    healed = list(messages)
    last_assistant = next(
        (i for i in range(len(healed) - 1, -1, -1) if healed[i].role == "assistant"),
        None,
    )
    if last_assistant is not None and healed[last_assistant].tool_calls:
        answered = {
            m.tool_call_id
            for m in healed[last_assistant + 1 :]
            if m.role == "tool" and m.tool_call_id
        }
        for call in healed[last_assistant].tool_calls:
            if call.id and call.id not in answered:
                healed.append(
                    Message.tool(
                        name=call.name,
                        tool_call_id=call.id,
                        content=serialize_payload(tool_error(ABORTED_TOOL_CALL_ERROR)),
                    )
                )
    healed.append(Message.assistant(INTERRUPTED_NOTE))
    return healed


def sanitize_messages_for_api(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Strip display-only fields; returns OpenAI chat-format dicts."""
    return [m.to_api() for m in messages]
