from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from typing import Any

import structlog

from workbench.agent.events import (
    AgentEvent,
    PermissionRequested,
    StatusChanged,
    ToolCallInfo,
    ToolDenied,
    TranscriptUpdated,
    TurnFinished,
    TurnState,
)
from workbench.agent.model_client import (
    ModelClient,
    ModelResponse,
    chat_until_cancelled,
)
from workbench.agent.permissions import (
    CONTINUE_EXECUTION,
    PERMISSION_DENIED_ERROR,
    PermissionGate,
    requires_permission,
)
from workbench.agent.preprocessor import (
    check_required_arguments,
    extract_tool_call_history,
    parse_tool_arguments,
    validate_tool_name,
)
from workbench.agent.prompt_builder import PromptBuilder
from workbench.config.settings import AgentSettings
from workbench.infra.errors import AgentError, TurnAborted
from workbench.session.models import Message, ToolCall
from workbench.session.validation import (
    heal_aborted_turn,
    heal_orphaned_tool_calls,
    sanitize_messages_for_api,
    validate_messages,
)
from workbench.tools.context import ToolContext
from workbench.tools.registry import ToolRegistry
from workbench.tools.responses import serialize_payload, tool_error

logger = structlog.get_logger()

NO_RESPONSE_PLACEHOLDER = "[No response generated]"
SKIPPED_AFTER_DENIAL_ERROR = "Skipped: an earlier tool call in this batch was denied by the user."
COMPACT_SUMMARY_HEADER = "**[Conversation Summary]**\n\n"
COMPACT_SUMMARY_PROMPT = """\
Output ONLY the summary, following this structure. Do not respond \
conversationally; write the summary directly.

## Conversation Summary

<discussed>
- Main topics and questions, problems solved, decisions made
</discussed>

<actions>
- Files created or modified, commands run, tool outcomes
</actions>

<state>
- What was accomplished, where the work left off, pending tasks
</state>

<next>
- Clear next actions
</next>"""


def _limit_reached_note(count: int) -> str:
    return f"[Tool execution limit reached ({count} calls) - stopped by user]"


class AgentLoop:
    """Drives one conversation: model calls, tool dispatch, permissions.

    Flow per turn: heal → user msg → (cap check → LLM →
    (tool_calls → validate → [permission] → execute)*)* → text response

    The loop is the only writer of the transcript. Progress is published as
    immutable events; the caller answers PermissionRequested events through
    the request object and cancels the turn by setting the cancel event.
    """

    def __init__(
        self,
        model_client: ModelClient,
        tool_registry: ToolRegistry,
        prompt_builder: PromptBuilder,
        settings: AgentSettings | None = None,
        *,
        permission_gate: PermissionGate | None = None,
    ) -> None:
        self._model_client = model_client
        self._tool_registry = tool_registry
        self._prompt_builder = prompt_builder
        self._settings = settings or AgentSettings()
        self._gate = permission_gate or PermissionGate()
        self._messages: list[Message] = []
        self._state = TurnState.DONE

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def permission_gate(self) -> PermissionGate:
        return self._gate

    def load(self, messages: Sequence[Message]) -> None:
        """Replace the transcript (e.g. from saved history)."""
        self._messages = list(messages)

    def clear(self) -> None:
        self._messages = []

    async def compact(self, cancel: asyncio.Event | None = None) -> Message | None:
        """Replace the transcript with one model-written summary message.

        One model call, no tools. Returns the summary message, or None when
        there is nothing to compact. On cancellation TurnAborted propagates
        and the transcript is left as it was.
        """
        if not self._messages:
            return None
        cancel = cancel or asyncio.Event()

        transcript = heal_orphaned_tool_calls(self._messages)
        if transcript[-1].role == "user":
            transcript.append(Message.assistant(NO_RESPONSE_PLACEHOLDER))
        request = self._build_request([*transcript, Message.user(COMPACT_SUMMARY_PROMPT)])
        response = await chat_until_cancelled(self._model_client, request, cancel)

        summary = Message.assistant(
            COMPACT_SUMMARY_HEADER + (response.content or "[Failed to generate summary]"),
            usage=response.usage,
        )
        logger.info(
            "conversation_compacted",
            original_messages=len(self._messages),
            summary_length=len(summary.content or ""),
        )
        self._messages = [summary]
        return summary

    async def run_turn(
        self, content: str, cancel: asyncio.Event | None = None
    ) -> AsyncIterator[AgentEvent]:
        """Handle one user message and yield agent events.

        Always ends with a TurnFinished event, except when an unexpected
        failure (LLMError, AgentError) propagates. Cancellation is not an
        exception for the caller: the transcript is closed out and the turn
        finishes with state ABORTED.
        """
        cancel = cancel or asyncio.Event()

        # One-time repair pass; synthetic entries are only inserted here.
        self._messages = heal_orphaned_tool_calls(self._messages)
        self._messages.append(Message.user(content))
        yield self._snapshot()

        counter = {"iterations": 0}
        try:
            async for event in self._run(cancel, counter):
                yield event
        except TurnAborted:
            logger.info("turn_aborted", iterations=counter["iterations"])
            self._messages = heal_aborted_turn(self._messages)
            self._state = TurnState.ABORTED
            yield self._snapshot()
            yield TurnFinished(state=TurnState.ABORTED, iterations=counter["iterations"])
            return
        except Exception as e:
            logger.exception("turn_failed", iterations=counter["iterations"])
            self._close_failed_turn(e)
            raise

        logger.info("turn_completed", iterations=counter["iterations"])
        yield TurnFinished(state=self._state, iterations=counter["iterations"])

    async def _run(
        self, cancel: asyncio.Event, counter: dict[str, int]
    ) -> AsyncIterator[AgentEvent]:
        max_loops = self._settings.loop_limit

        while True:
            self._check_cancel(cancel)

            if counter["iterations"] >= max_loops:
                request = self._gate.open_request(
                    CONTINUE_EXECUTION,
                    {
                        "current_count": counter["iterations"],
                        "additional": self._settings.loop_limit_extension,
                    },
                )
                self._state = TurnState.AWAITING_PERMISSION
                yield PermissionRequested(request=request)
                allowed = await self._gate.wait(request, cancel)
                self._check_cancel(cancel)
                if not allowed:
                    self._messages.append(
                        Message.assistant(_limit_reached_note(counter["iterations"]))
                    )
                    self._state = TurnState.DONE
                    yield self._snapshot()
                    return
                max_loops += self._settings.loop_limit_extension
                logger.info("loop_limit_extended", max_loops=max_loops)

            counter["iterations"] += 1

            self._state = TurnState.AWAITING_MODEL
            yield StatusChanged(text="Thinking...", state=self._state)
            response = await self._call_model(cancel)

            if not response.tool_calls:
                self._messages.append(
                    Message.assistant(
                        response.content or NO_RESPONSE_PLACEHOLDER,
                        usage=response.usage,
                    )
                )
                self._state = TurnState.DONE
                yield self._snapshot()
                return

            self._messages.append(
                Message.assistant(
                    response.content or "",
                    tool_calls=response.tool_calls,
                    usage=response.usage,
                )
            )
            yield self._snapshot()

            self._state = TurnState.EXECUTING_TOOLS
            yield StatusChanged(text="Running tools...", state=self._state)

            denied = False
            async for event in self._execute_tool_calls(response.tool_calls, cancel):
                if isinstance(event, ToolDenied):
                    denied = True
                yield event

            if denied:
                # Let the model acknowledge the denial, then stop.
                self._state = TurnState.AWAITING_MODEL
                yield StatusChanged(text="Processing...", state=self._state)
                final = await self._call_model(cancel)
                self._messages.append(
                    Message.assistant(
                        final.content or NO_RESPONSE_PLACEHOLDER, usage=final.usage
                    )
                )
                self._state = TurnState.DONE
                yield self._snapshot()
                return

    async def _execute_tool_calls(
        self, tool_calls: Sequence[ToolCall], cancel: asyncio.Event
    ) -> AsyncIterator[AgentEvent]:
        """Resolve every call of one batch into exactly one tool message, in order."""
        for index, call in enumerate(tool_calls):
            self._check_cancel(cancel)

            args = self._preprocess(call)
            if args is None:
                yield self._snapshot()
                continue

            yield ToolCallInfo(tool_name=call.name, arguments=args, call_id=call.id)

            if requires_permission(call.name, self._settings.allowed_tools):
                request = self._gate.open_request(call.name, args)
                self._state = TurnState.AWAITING_PERMISSION
                yield PermissionRequested(request=request)
                allowed = await self._gate.wait(request, cancel)
                self._check_cancel(cancel)
                self._state = TurnState.EXECUTING_TOOLS

                if not allowed:
                    logger.info("tool_denied_by_user", tool_name=call.name)
                    self._append_tool_result(
                        call, serialize_payload(tool_error(PERMISSION_DENIED_ERROR)), args
                    )
                    for skipped in tool_calls[index + 1 :]:
                        self._append_tool_result(
                            skipped,
                            serialize_payload(tool_error(SKIPPED_AFTER_DENIAL_ERROR)),
                            {},
                        )
                    yield self._snapshot()
                    yield ToolDenied(
                        tool_name=call.name,
                        call_id=call.id,
                        message=PERMISSION_DENIED_ERROR,
                    )
                    return

            all_calls, last_call = extract_tool_call_history(self._messages)
            context = ToolContext(
                all_tool_calls=all_calls, last_tool_call=last_call, cancel=cancel
            )
            result = await self._tool_registry.execute(call.name, args, context)
            self._append_tool_result(call, result, args)
            yield self._snapshot()

    def _preprocess(self, call: ToolCall) -> dict[str, Any] | None:
        """Name, argument and required-field checks. None means already answered."""
        checked = validate_tool_name(call.name, call.id)
        if checked.ok:
            checked = parse_tool_arguments(call.name, call.arguments, call.id)
        if checked.ok:
            tool = self._tool_registry.get(call.name)
            if tool is not None:
                checked = check_required_arguments(
                    call.name, checked.value, tool.required_arguments, call.id
                )
        if checked.ok:
            return checked.value
        self._messages.append(checked.message)
        return None

    def _append_tool_result(
        self, call: ToolCall, content: str, args: dict[str, Any]
    ) -> None:
        self._messages.append(
            Message.tool(
                name=call.name,
                tool_call_id=call.id,
                content=content,
                tool_args=args,
            )
        )

    def _build_request(
        self, transcript: Sequence[Message] | None = None
    ) -> list[dict[str, Any]]:
        """System context + transcript, validated and sanitised for the API."""
        if transcript is None:
            transcript = self._messages
        assembled = [*self._prompt_builder.build(), *transcript]
        result = validate_messages(assembled)
        if result.warnings:
            logger.warning("transcript_warnings", warnings=result.warnings)
        if not result.valid:
            raise AgentError(
                f"Invalid message structure: {'; '.join(result.errors)}"
            )
        return sanitize_messages_for_api(assembled)

    async def _call_model(self, cancel: asyncio.Event) -> ModelResponse:
        """Model call raced against the cancel signal."""
        return await chat_until_cancelled(
            self._model_client,
            self._build_request(),
            cancel,
            tools=self._tool_registry.get_tools_schema() or None,
        )

    def _close_failed_turn(self, error: Exception) -> None:
        """Keep the transcript sendable after an unexpected failure."""
        self._messages = heal_orphaned_tool_calls(self._messages)
        if self._messages and self._messages[-1].role != "assistant":
            self._messages.append(Message.assistant(f"[Request failed: {error}]"))
        self._state = TurnState.DONE

    def _check_cancel(self, cancel: asyncio.Event) -> None:
        if cancel.is_set():
            raise TurnAborted()

    def _snapshot(self) -> TranscriptUpdated:
        return TranscriptUpdated(messages=tuple(self._messages))
