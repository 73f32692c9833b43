from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import structlog

from workbench.agent.events import (
    AgentEvent,
    ToolCallInfo,
    TranscriptUpdated,
    TurnFinished,
    TurnState,
)
from workbench.agent.model_client import ModelClient, chat_until_cancelled
from workbench.agent.preprocessor import (
    check_required_arguments,
    extract_tool_call_history,
    parse_tool_arguments,
    validate_tool_name,
)
from workbench.agent.prompt_builder import PromptBuilder
from workbench.infra.errors import AgentError, TurnAborted
from workbench.session.models import Message, ToolCall
from workbench.session.validation import sanitize_messages_for_api
from workbench.tools.context import ToolContext
from workbench.tools.registry import ToolRegistry
from workbench.tools.responses import decode_payload, serialize_payload, tool_error

logger = structlog.get_logger()

CONTEXT_WRITE_TOOL = "context_write"
EXPLORATORY_TOOLS = ("read_file", "list_files", "find_files", "grep")
DEFAULT_MAX_ITERATIONS = 50

CONTEXT_REQUEST = (
    "Please explore the codebase and build a comprehensive project context document."
)
CONTEXT_BUILDING_PROMPT = """\
You are building the project context document for this repository. It is \
included in every future conversation, so keep it brief but complete.

Cover: what the project is and the problem it solves; the stack (languages, \
frameworks, libraries); the high-level architecture and design patterns; the \
key files and directories and their purposes; how to build, test and run it; \
code conventions.

Explore with list_files, find_files, grep and read_file. Do not describe the \
assistant's own configuration directory, it is not part of the project. If a \
Project Context section is present above, it is the previous version: review \
it and write an updated one. Finish by calling context_write exactly once with \
the complete markdown document."""


class ContextBuilder:
    """Model-driven exploration that ends by writing the project context note.

    Runs on its own transcript, separate from the conversation, with the
    read-only exploration tools plus context_write. Tool calls are not gated:
    the user asked for the exploration explicitly.
    """

    def __init__(
        self,
        model_client: ModelClient,
        tool_registry: ToolRegistry,
        prompt_builder: PromptBuilder,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self._model_client = model_client
        self._tool_registry = tool_registry
        self._prompt_builder = prompt_builder
        self._max_iterations = max_iterations
        self._tool_names = (*EXPLORATORY_TOOLS, CONTEXT_WRITE_TOOL)

    async def run(self, cancel: asyncio.Event | None = None) -> AsyncIterator[AgentEvent]:
        """Explore and write context.md, yielding progress events.

        Ends with TurnFinished (DONE once context_write succeeded, ABORTED on
        cancel). Raises AgentError when the model stops without writing the
        context or runs past the iteration limit; LLMError propagates.
        """
        cancel = cancel or asyncio.Event()
        system = [*self._prompt_builder.build(), Message.system(CONTEXT_BUILDING_PROMPT)]
        messages: list[Message] = [Message.user(CONTEXT_REQUEST)]
        tools = self._tool_registry.get_tools_schema(self._tool_names) or None
        logger.info("context_building_started")
        yield TranscriptUpdated(messages=tuple(messages))

        iterations = 0
        written = False
        try:
            while not written:
                if iterations >= self._max_iterations:
                    raise AgentError("Context building exceeded maximum iterations")
                iterations += 1

                request = sanitize_messages_for_api([*system, *messages])
                response = await chat_until_cancelled(
                    self._model_client, request, cancel, tools=tools
                )
                messages.append(
                    Message.assistant(
                        response.content or "",
                        tool_calls=response.tool_calls,
                        usage=response.usage,
                    )
                )
                yield TranscriptUpdated(messages=tuple(messages))

                if not response.tool_calls:
                    raise AgentError(
                        "Context building finished without writing context. "
                        "The model may need more guidance."
                    )

                for call in response.tool_calls:
                    if cancel.is_set():
                        raise TurnAborted()
                    args = self._preprocess(call, messages)
                    if args is None:
                        yield TranscriptUpdated(messages=tuple(messages))
                        continue
                    yield ToolCallInfo(tool_name=call.name, arguments=args, call_id=call.id)
                    all_calls, last_call = extract_tool_call_history(messages)
                    context = ToolContext(
                        all_tool_calls=all_calls, last_tool_call=last_call, cancel=cancel
                    )
                    result = await self._tool_registry.execute(call.name, args, context)
                    messages.append(
                        Message.tool(
                            name=call.name, tool_call_id=call.id, content=result, tool_args=args
                        )
                    )
                    yield TranscriptUpdated(messages=tuple(messages))
                    if call.name == CONTEXT_WRITE_TOOL:
                        payload = decode_payload(result)
                        written = written or (payload is not None and "error" not in payload)
        except TurnAborted:
            logger.info("context_building_aborted", iterations=iterations)
            yield TurnFinished(state=TurnState.ABORTED, iterations=iterations)
            return

        logger.info(
            "context_building_completed",
            iterations=iterations,
            tool_calls=sum(1 for m in messages if m.role == "tool"),
        )
        yield TurnFinished(state=TurnState.DONE, iterations=iterations)

    def _preprocess(self, call: ToolCall, messages: list[Message]) -> dict | None:
        checked = validate_tool_name(call.name, call.id)
        if checked.ok and call.name not in self._tool_names:
            messages.append(
                Message.tool(
                    name=call.name,
                    tool_call_id=call.id,
                    content=serialize_payload(
                        tool_error(f"Tool not available while building context: {call.name}")
                    ),
                )
            )
            return None
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
        messages.append(checked.message)
        return None
