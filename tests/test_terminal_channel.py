"""Tests for the terminal channel: slash commands, turn rendering, permission prompts."""

from __future__ import annotations

import io
from unittest.mock import AsyncMock, MagicMock

import pytest

from workbench.agent.agent import COMPACT_SUMMARY_HEADER, AgentLoop
from workbench.agent.context_builder import ContextBuilder
from workbench.agent.events import TurnState
from workbench.agent.model_client import ModelClient, ModelResponse
from workbench.agent.prompt_builder import PromptBuilder
from workbench.channels.terminal import TerminalChannel
from workbench.config.settings import AgentSettings
from workbench.infra.errors import LLMError
from workbench.memory.notes import ProjectNotes
from workbench.memory.tasks import TaskList
from workbench.session.history import HistoryStore
from workbench.session.models import Message, ToolCall
from workbench.tools.builtins.context_write import ContextWriteTool
from workbench.tools.builtins.manage_todos import ManageTodosTool
from workbench.tools.registry import ToolRegistry


class ScriptedModelClient(ModelClient):
    def __init__(self, responses: list[ModelResponse]) -> None:
        self._responses = list(responses)

    async def chat(self, messages, *, tools=None) -> ModelResponse:
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _todo_call() -> ModelResponse:
    return ModelResponse(
        content=None,
        tool_calls=(
            ToolCall(
                id="c1",
                name="manage_todos",
                arguments='{"todos": [{"task": "t", "completed": false}]}',
            ),
        ),
    )


@pytest.fixture()
def notes(tmp_path):
    return ProjectNotes(tmp_path / ".workbench")


@pytest.fixture()
def tasks():
    return TaskList()


def _make_channel(
    notes,
    tasks,
    responses,
    answers=(),
    *,
    allowed=("manage_todos",),
    history=None,
    context_builder=None,
):
    registry = ToolRegistry()
    registry.register(ManageTodosTool(tasks))
    agent = AgentLoop(
        ScriptedModelClient(responses),
        registry,
        PromptBuilder(notes, tasks, registry, base_prompt="test"),
        AgentSettings(allowed_tools=list(allowed)),
    )
    session = MagicMock()
    session.prompt_async = AsyncMock(side_effect=list(answers))
    out = io.StringIO()
    channel = TerminalChannel(
        agent, notes, tasks, history, session=session, output=out, context_builder=context_builder
    )
    return channel, agent, out


class TestSlashCommands:
    @pytest.mark.asyncio()
    async def test_help(self, notes, tasks):
        channel, _, out = _make_channel(notes, tasks, [])
        assert await channel.handle_line("/help") is True
        assert "/remember" in out.getvalue()

    @pytest.mark.asyncio()
    async def test_exit_and_quit(self, notes, tasks):
        channel, _, _ = _make_channel(notes, tasks, [])
        assert await channel.handle_line("/exit") is False
        assert await channel.handle_line("/QUIT") is False

    @pytest.mark.asyncio()
    async def test_remember_and_forget(self, notes, tasks):
        channel, _, out = _make_channel(notes, tasks, [])
        await channel.handle_line("/remember use uv for installs")
        assert notes.load_memories()[0].endswith("use uv for installs")
        await channel.handle_line("/remember")
        assert "Usage: /remember" in out.getvalue()
        await channel.handle_line("/forget")
        assert notes.load_memories() == []
        assert "Forgot 1 memories." in out.getvalue()

    @pytest.mark.asyncio()
    async def test_unknown_command(self, notes, tasks):
        channel, _, out = _make_channel(notes, tasks, [])
        await channel.handle_line("/frobnicate")
        assert "Unknown command: /frobnicate" in out.getvalue()

    @pytest.mark.asyncio()
    async def test_clear_resets_conversation_and_history(self, notes, tasks, tmp_path):
        history = HistoryStore(tmp_path / ".workbench")
        channel, agent, _ = _make_channel(
            notes, tasks, [ModelResponse(content="hi")], history=history
        )
        await channel.handle_line("hello")
        assert history.path.exists()
        await channel.handle_line("/clear")
        assert agent.messages == ()
        assert not history.path.exists()

    @pytest.mark.asyncio()
    async def test_blank_line_ignored(self, notes, tasks):
        channel, agent, _ = _make_channel(notes, tasks, [])
        assert await channel.handle_line("   ") is True
        assert agent.messages == ()


class TestContextCommands:
    @pytest.mark.asyncio()
    async def test_show_context_without_note(self, notes, tasks):
        channel, _, out = _make_channel(notes, tasks, [])
        await channel.handle_line("/show_context")
        assert "No project context found" in out.getvalue()

    @pytest.mark.asyncio()
    async def test_show_context_prints_note(self, notes, tasks):
        notes.write_context("# Demo\n\nA CLI.\n")
        channel, _, out = _make_channel(notes, tasks, [])
        await channel.handle_line("/show_context")
        assert "## Current Project Context" in out.getvalue()
        assert "A CLI." in out.getvalue()

    @pytest.mark.asyncio()
    async def test_compact_replaces_transcript_and_saves_history(self, notes, tasks, tmp_path):
        history = HistoryStore(tmp_path / ".workbench")
        channel, agent, out = _make_channel(
            notes,
            tasks,
            [ModelResponse(content="hi"), ModelResponse(content="We said hello.")],
            history=history,
        )
        await channel.handle_line("hello")
        await channel.handle_line("/compact")

        assert len(agent.messages) == 1
        assert agent.messages[0].role == "assistant"
        assert agent.messages[0].content == COMPACT_SUMMARY_HEADER + "We said hello."
        assert "We said hello." in out.getvalue()
        assert [m.content for m in history.load()] == [agent.messages[0].content]

    @pytest.mark.asyncio()
    async def test_compact_with_empty_conversation(self, notes, tasks):
        channel, agent, out = _make_channel(notes, tasks, [])
        await channel.handle_line("/compact")
        assert "No conversation history to compact." in out.getvalue()
        assert agent.messages == ()

    @pytest.mark.asyncio()
    async def test_compact_failure_keeps_transcript(self, notes, tasks):
        channel, agent, out = _make_channel(
            notes, tasks, [ModelResponse(content="hi"), LLMError("provider down")]
        )
        await channel.handle_line("hello")
        before = agent.messages
        await channel.handle_line("/compact")
        assert agent.messages == before
        assert "Error compacting conversation: provider down" in out.getvalue()

    @pytest.mark.asyncio()
    async def test_context_writes_note_through_model(self, notes, tasks):
        builder_registry = ToolRegistry()
        builder_registry.register(ContextWriteTool(notes))
        model = ScriptedModelClient(
            [
                ModelResponse(
                    content=None,
                    tool_calls=(
                        ToolCall(
                            id="w1",
                            name="context_write",
                            arguments='{"content": "# Demo\\n\\nBuilt by exploring."}',
                        ),
                    ),
                )
            ]
        )
        builder = ContextBuilder(
            model,
            builder_registry,
            PromptBuilder(notes, tasks, builder_registry, base_prompt="test"),
        )
        channel, agent, out = _make_channel(notes, tasks, [], context_builder=builder)

        await channel.handle_line("/context")

        assert notes.load_context() == "# Demo\n\nBuilt by exploring."
        assert "-> context_write" in out.getvalue()
        assert "Project context saved." in out.getvalue()
        assert agent.messages == ()

    @pytest.mark.asyncio()
    async def test_context_unavailable_without_builder(self, notes, tasks):
        channel, _, out = _make_channel(notes, tasks, [])
        await channel.handle_line("/context")
        assert "Context building is not available." in out.getvalue()


class TestTurns:
    @pytest.mark.asyncio()
    async def test_text_reply_printed(self, notes, tasks):
        channel, _, out = _make_channel(notes, tasks, [ModelResponse(content="Hello there")])
        state = await channel.run_turn("hi")
        assert state == TurnState.DONE
        assert "Hello there" in out.getvalue()

    @pytest.mark.asyncio()
    async def test_tool_call_rendered(self, notes, tasks):
        channel, _, out = _make_channel(
            notes, tasks, [_todo_call(), ModelResponse(content="Done")]
        )
        await channel.run_turn("plan it")
        text = out.getvalue()
        assert "-> manage_todos" in text
        assert "   manage_todos: ok" in text
        assert text.rstrip().endswith("Done")
        assert len(tasks) == 1

    @pytest.mark.asyncio()
    async def test_permission_granted(self, notes, tasks):
        channel, _, out = _make_channel(
            notes, tasks, [_todo_call(), ModelResponse(content="Done")],
            answers=["y"], allowed=(),
        )
        await channel.run_turn("plan it")
        assert len(tasks) == 1
        assert "   manage_todos: ok" in out.getvalue()

    @pytest.mark.asyncio()
    async def test_permission_denied(self, notes, tasks):
        channel, agent, out = _make_channel(
            notes, tasks, [_todo_call(), ModelResponse(content="Understood")],
            answers=["n"], allowed=(),
        )
        state = await channel.run_turn("plan it")
        assert state == TurnState.DONE
        assert len(tasks) == 0
        assert "x  manage_todos denied" in out.getvalue()
        assert agent.messages[-1].content == "Understood"

    @pytest.mark.asyncio()
    async def test_interrupt_at_permission_prompt_aborts(self, notes, tasks):
        channel, agent, out = _make_channel(
            notes, tasks, [_todo_call()], answers=[KeyboardInterrupt()], allowed=(),
        )
        state = await channel.run_turn("plan it")
        assert state == TurnState.ABORTED
        assert "(interrupted)" in out.getvalue()
        assert agent.messages[-1].role == "assistant"

    @pytest.mark.asyncio()
    async def test_model_failure_printed(self, notes, tasks):
        channel, agent, out = _make_channel(notes, tasks, [RuntimeError("provider down")])
        state = await channel.run_turn("hi")
        assert state is None
        assert "Error: provider down" in out.getvalue()
        assert agent.messages[-1].content == "[Request failed: provider down]"


class TestRunLoop:
    @pytest.mark.asyncio()
    async def test_restores_history_and_exits_on_eof(self, notes, tasks, tmp_path):
        history = HistoryStore(tmp_path / ".workbench")
        history.save([Message.user("old"), Message.assistant("reply")])
        channel, agent, out = _make_channel(
            notes, tasks, [], answers=[KeyboardInterrupt(), "/help", EOFError()],
            history=history,
        )
        await channel.run()
        assert len(agent.messages) == 2
        assert "(restored 2 messages from history)" in out.getvalue()
        assert "Commands:" in out.getvalue()

    @pytest.mark.asyncio()
    async def test_exit_command_stops_loop(self, notes, tasks):
        channel, _, _ = _make_channel(notes, tasks, [], answers=["/exit", "never read"])
        await channel.run()
        assert channel._session.prompt_async.await_count == 1
