"""Tests for transcript validation and healing."""

from __future__ import annotations

import json

from workbench.session.models import Message, ToolCall
from workbench.session.validation import (
    ABORTED_TOOL_CALL_ERROR,
    INTERRUPTED_NOTE,
    ORPHANED_TOOL_CALL_ERROR,
    heal_aborted_turn,
    heal_orphaned_tool_calls,
    sanitize_messages_for_api,
    validate_messages,
)


def _assistant_calling(*ids: str) -> Message:
    return Message.assistant(
        "", tool_calls=[ToolCall(id=i, name="read_file", arguments="{}") for i in ids]
    )


def _result(call_id: str, payload: dict | None = None) -> Message:
    return Message.tool(
        name="read_file",
        tool_call_id=call_id,
        content=json.dumps(payload or {"content": "x"}),
    )


class TestValidateMessages:
    def test_well_formed_transcript_is_valid(self):
        messages = [
            Message.system("base"),
            Message.user("hi"),
            _assistant_calling("a", "b"),
            _result("a"),
            _result("b"),
            Message.assistant("done"),
        ]
        result = validate_messages(messages)
        assert result.valid
        assert result.errors == []

    def test_unanswered_ids_reported_in_one_error(self):
        messages = [
            Message.user("hi"),
            _assistant_calling("a", "b", "c"),
            _result("b"),
        ]
        result = validate_messages(messages)
        assert not result.valid
        assert len(result.errors) == 1
        assert "a" in result.errors[0] and "c" in result.errors[0]
        assert "b," not in result.errors[0]

    def test_consecutive_user_messages_rejected(self):
        result = validate_messages([Message.user("one"), Message.user("two")])
        assert not result.valid
        assert any("consecutive user" in e for e in result.errors)

    def test_empty_user_content_rejected(self):
        result = validate_messages([Message.user("   ")])
        assert not result.valid

    def test_unknown_role_rejected(self):
        result = validate_messages([Message(role="robot", content="x")])  # type: ignore[arg-type]
        assert not result.valid

    def test_system_without_content_rejected(self):
        result = validate_messages([Message(role="system", content=None)])
        assert not result.valid

    def test_late_system_message_is_only_a_warning(self):
        result = validate_messages([Message.user("hi"), Message.system("late")])
        assert result.valid
        assert result.warnings

    def test_duplicate_call_id_rejected(self):
        msg = Message.assistant(
            "",
            tool_calls=[
                ToolCall(id="a", name="read_file"),
                ToolCall(id="a", name="grep"),
            ],
        )
        result = validate_messages([Message.user("hi"), msg, _result("a")])
        assert any("duplicate" in e for e in result.errors)

    def test_tool_call_without_name_rejected(self):
        msg = Message.assistant("", tool_calls=[ToolCall(id="a", name="")])
        result = validate_messages([Message.user("hi"), msg, _result("a")])
        assert any("no function name" in e for e in result.errors)

    def test_tool_message_without_call_id_rejected(self):
        bad = Message(role="tool", content="{}", name="read_file")
        result = validate_messages([Message.user("hi"), bad])
        assert not result.valid

    def test_unexpected_tool_result_is_a_warning(self):
        messages = [Message.user("hi"), Message.assistant("ok"), _result("zzz")]
        result = validate_messages(messages)
        assert result.valid
        assert any("zzz" in w for w in result.warnings)


class TestHealOrphanedToolCalls:
    def test_orphans_answered_right_after_their_assistant_message(self):
        messages = [
            Message.user("hi"),
            _assistant_calling("a", "b"),
            _result("a"),
            Message.assistant("partial"),
            Message.user("again"),
        ]
        healed = heal_orphaned_tool_calls(messages)

        assert len(healed) == len(messages) + 1
        assert healed[3].role == "tool"
        assert healed[3].tool_call_id == "b"
        assert json.loads(healed[3].content) == {"error": ORPHANED_TOOL_CALL_ERROR}
        assert validate_messages(healed).valid

    def test_multiple_assistant_messages_healed(self):
        messages = [
            Message.user("one"),
            _assistant_calling("a"),
            Message.assistant("x"),
            Message.user("two"),
            _assistant_calling("b"),
        ]
        healed = heal_orphaned_tool_calls(messages)
        ids = [m.tool_call_id for m in healed if m.role == "tool"]
        assert ids == ["a", "b"]
        assert healed[2].tool_call_id == "a"
        assert validate_messages(healed).valid

    def test_idempotent(self):
        messages = [Message.user("hi"), _assistant_calling("a", "b"), _result("b")]
        once = heal_orphaned_tool_calls(messages)
        assert heal_orphaned_tool_calls(once) == once

    def test_valid_transcript_unchanged(self):
        messages = [Message.user("hi"), _assistant_calling("a"), _result("a")]
        assert heal_orphaned_tool_calls(messages) == messages


class TestHealAbortedTurn:
    def test_unanswered_calls_aborted_then_note(self):
        messages = [Message.user("hi"), _assistant_calling("a", "b"), _result("a")]
        healed = heal_aborted_turn(messages)

        assert healed[3].tool_call_id == "b"
        assert json.loads(healed[3].content) == {"error": ABORTED_TOOL_CALL_ERROR}
        assert healed[-1].role == "assistant"
        assert healed[-1].content == INTERRUPTED_NOTE
        assert validate_messages(healed).valid

    def test_abort_before_model_reply_only_adds_note(self):
        healed = heal_aborted_turn([Message.user("hi")])
        assert [m.role for m in healed] == ["user", "assistant"]
        assert validate_messages(healed).valid


class TestSanitize:
    def test_display_fields_dropped(self):
        msg = Message.tool(
            name="read_file",
            tool_call_id="a",
            content="{}",
            tool_args={"file_path": "x"},
        )
        (api,) = sanitize_messages_for_api([msg])
        assert api == {
            "role": "tool",
            "content": "{}",
            "tool_call_id": "a",
            "name": "read_file",
        }

    def test_assistant_tool_calls_in_openai_shape(self):
        (api,) = sanitize_messages_for_api([_assistant_calling("a")])
        assert api["tool_calls"] == [
            {
                "id": "a",
                "type": "function",
                "function": {"name": "read_file", "arguments": "{}"},
            }
        ]
