"""Interactive terminal front end.

Reads input with prompt_toolkit, drives AgentLoop turns and prints the
transcript as plain text. Ctrl-C during a turn sets the turn's cancel signal;
at the input prompt it is ignored and Ctrl-D exits.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import signal
import sys
from typing import TYPE_CHECKING, TextIO

import structlog
from prompt_toolkit import PromptSession

from workbench.agent.events import (
    PermissionRequested,
    ToolCallInfo,
    ToolDenied,
    TranscriptUpdated,
    TurnFinished,
    TurnState,
)
from workbench.agent.permissions import CONTINUE_EXECUTION
from workbench.infra.errors import TurnAborted, WorkbenchError
from workbench.tools.responses import decode_payload

if TYPE_CHECKING:
    from workbench.agent.agent import AgentLoop
    from workbench.agent.context_builder import ContextBuilder
    from workbench.agent.permissions import PermissionRequest
    from workbench.memory.notes import ProjectNotes
    from workbench.memory.tasks import TaskList
    from workbench.session.history import HistoryStore
    from workbench.session.models import Message

logger = structlog.get_logger()

HELP_TEXT = """\
Commands:
  /help             show this help
  /clear            clear the conversation and saved history
  /remember <text>  save a persistent memory for this project
  /forget           delete all persistent memories
  /compact          summarise the conversation to save context
  /context          explore the project and rewrite its context note
  /show_context     print the saved project context
  /exit             quit (Ctrl-D works too)
Ctrl-C during a response cancels it."""

_ARG_PREVIEW_CHARS = 120


def _preview(value: object) -> str:
    text = json.dumps(value, ensure_ascii=False, default=str)
    if len(text) > _ARG_PREVIEW_CHARS:
        text = text[: _ARG_PREVIEW_CHARS - 3] + "..."
    return text


class TerminalChannel:
    """Line-oriented chat loop around one AgentLoop."""

    def __init__(
        self,
        agent: AgentLoop,
        notes: ProjectNotes,
        tasks: TaskList,
        history: HistoryStore | None = None,
        *,
        session: PromptSession | None = None,
        output: TextIO | None = None,
        context_builder: ContextBuilder | None = None,
    ) -> None:
        self._agent = agent
        self._context_builder = context_builder
        self._notes = notes
        self._tasks = tasks
        self._history = history
        self._session = session or PromptSession()
        self._out = output or sys.stdout
        self._printed = 0

    def _print(self, text: str = "") -> None:
        print(text, file=self._out, flush=True)

    async def run(self) -> None:
        if self._history is not None:
            self._agent.load(self._history.load())
        self._printed = len(self._agent.messages)
        if self._printed:
            self._print(f"(restored {self._printed} messages from history)")
        self._print("Type /help for commands.")

        while True:
            try:
                line = await self._session.prompt_async("> ")
            except KeyboardInterrupt:
                continue
            except EOFError:
                break
            if not await self.handle_line(line):
                break
        logger.info("terminal_channel_closed")

    async def handle_line(self, line: str) -> bool:
        """Process one input line. Returns False when the session should end."""
        text = line.strip()
        if not text:
            return True
        if text.startswith("/"):
            return await self._handle_command(text)
        await self.run_turn(text)
        return True

    async def _handle_command(self, text: str) -> bool:
        command, _, rest = text.partition(" ")
        command = command.lower()
        if command in {"/exit", "/quit"}:
            return False
        if command == "/help":
            self._print(HELP_TEXT)
        elif command == "/clear":
            self._agent.clear()
            self._tasks.clear()
            self._printed = 0
            if self._history is not None:
                self._history.delete()
            self._print("Conversation cleared.")
        elif command == "/remember":
            if not rest.strip():
                self._print("Usage: /remember <text>")
            else:
                entry = self._notes.add_memory(rest)
                self._print(f"Remembered: {entry}")
        elif command == "/forget":
            count = self._notes.clear_memories()
            self._print(f"Forgot {count} memories.")
        elif command == "/compact":
            await self._compact()
        elif command == "/context":
            await self._build_context()
        elif command == "/show_context":
            context = self._notes.load_context()
            if context:
                self._print(f"## Current Project Context\n\n{context.rstrip()}")
            else:
                self._print("No project context found. Use /context to build it.")
        else:
            self._print(f"Unknown command: {command}. Type /help for commands.")
        return True

    async def run_turn(self, content: str) -> TurnState | None:
        """Run one turn to completion, rendering events. Returns the final state."""
        cancel = asyncio.Event()
        final: TurnState | None = None
        self._watch_interrupt(cancel)
        try:
            async for event in self._agent.run_turn(content, cancel):
                if isinstance(event, TranscriptUpdated):
                    self._render_messages(event.messages)
                elif isinstance(event, ToolCallInfo):
                    self._print(f"-> {event.tool_name} {_preview(event.arguments)}")
                elif isinstance(event, ToolDenied):
                    self._print(f"x  {event.tool_name} denied")
                elif isinstance(event, PermissionRequested):
                    await self._ask_permission(event.request, cancel)
                    self._watch_interrupt(cancel)
                elif isinstance(event, TurnFinished):
                    final = event.state
                    if event.state == TurnState.ABORTED:
                        self._print("(interrupted)")
        except WorkbenchError as e:
            logger.warning("turn_error", error=str(e), code=e.code)
            self._print(f"Error: {e}")
        except Exception as e:
            logger.exception("turn_unexpected_error")
            self._print(f"Error: {e}")
        finally:
            self._unwatch_interrupt()
            # Failed turns still leave a repaired transcript behind.
            self._render_messages(self._agent.messages)
            self._save_history()
        return final

    async def _compact(self) -> None:
        if not self._agent.messages:
            self._print("No conversation history to compact.")
            return
        self._print("Compacting conversation history...")
        cancel = asyncio.Event()
        self._watch_interrupt(cancel)
        try:
            await self._agent.compact(cancel)
        except TurnAborted:
            self._print("(interrupted)")
            return
        except WorkbenchError as e:
            logger.warning("compact_failed", error=str(e), code=e.code)
            self._print(f"Error compacting conversation: {e}")
            return
        finally:
            self._unwatch_interrupt()
        self._printed = 0
        self._render_messages(self._agent.messages)
        self._save_history()

    async def _build_context(self) -> None:
        if self._context_builder is None:
            self._print("Context building is not available.")
            return
        self._print("Building project context...")
        cancel = asyncio.Event()
        self._watch_interrupt(cancel)
        try:
            async for event in self._context_builder.run(cancel):
                if isinstance(event, ToolCallInfo):
                    self._print(f"-> {event.tool_name} {_preview(event.arguments)}")
                elif isinstance(event, TurnFinished):
                    if event.state == TurnState.ABORTED:
                        self._print("(interrupted)")
                    else:
                        self._print("Project context saved. Use /show_context to view it.")
        except WorkbenchError as e:
            logger.warning("context_build_failed", error=str(e), code=e.code)
            self._print(f"Error building context: {e}")
        finally:
            self._unwatch_interrupt()

    async def _ask_permission(
        self, request: PermissionRequest, cancel: asyncio.Event
    ) -> None:
        if request.tool_name == CONTINUE_EXECUTION:
            question = (
                f"Reached {request.args.get('current_count')} model calls. "
                f"Continue for {request.args.get('additional')} more? [y/N] "
            )
        else:
            question = f"Allow {request.tool_name} {_preview(request.args)}? [y/N] "

        # prompt_toolkit installs its own SIGINT handling while prompting.
        self._unwatch_interrupt()
        try:
            answer = await self._session.prompt_async(question)
        except (KeyboardInterrupt, EOFError):
            cancel.set()
            request.deny()
            return
        if answer.strip().lower() in {"y", "yes"}:
            request.grant()
        else:
            request.deny()

    def _render_messages(self, messages: tuple[Message, ...]) -> None:
        if len(messages) < self._printed:
            self._printed = 0
        for msg in messages[self._printed :]:
            self._render(msg)
        self._printed = len(messages)

    def _render(self, msg: Message) -> None:
        if msg.role == "assistant" and msg.content:
            self._print(msg.content.rstrip())
        elif msg.role == "tool":
            payload = decode_payload(msg.content)
            if payload is None or "error" in payload:
                error = payload.get("error") if payload else msg.content
                self._print(f"   {msg.name}: error: {error}")
            else:
                self._print(f"   {msg.name}: ok")

    def _save_history(self) -> None:
        if self._history is None:
            return
        try:
            self._history.save(self._agent.messages)
        except OSError as e:
            logger.warning("history_save_failed", error=str(e))
            self._print(f"Error: could not save history: {e}")

    def _watch_interrupt(self, cancel: asyncio.Event) -> None:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            asyncio.get_running_loop().add_signal_handler(signal.SIGINT, cancel.set)

    def _unwatch_interrupt(self) -> None:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
