"""Tests for tool name, argument and required-field checks."""

from __future__ import annotations

import json

import pytest

from workbench.agent.preprocessor import (
    check_required_arguments,
    extract_tool_call_history,
    parse_tool_arguments,
    validate_tool_name,
)
from workbench.session.models import Message


def _error_of(result) -> str:
    assert not result.ok
    assert result.message.role == "tool"
    return json.loads(result.message.content)["error"]


class TestValidateToolName:
    @pytest.mark.parametrize("name", ["list_files", "my-tool", "web.fetch", "tool123"])
    def test_accepted(self, name):
        result = validate_tool_name(name, "call_1")
        assert result.ok
        assert result.value == name

    @pytest.mark.parametrize("name", ["list_files()", "bad..tool", "../x", "tool name", ""])
    def test_rejected_with_synthetic_message(self, name):
        result = validate_tool_name(name, "call_1")
        error = _error_of(result)
        assert "Invalid tool name format" in error
        assert "parentheses" in error
        assert result.message.tool_call_id == "call_1"


class TestParseToolArguments:
    def test_empty_object(self):
        result = parse_tool_arguments("t", "{}", "c")
        assert result.ok
        assert result.value == {}

    def test_object_decoded(self):
        result = parse_tool_arguments("t", '{"a": 1}', "c")
        assert result.value == {"a": 1}

    def test_empty_text_is_empty_object(self):
        assert parse_tool_arguments("t", "", "c").value == {}

    def test_malformed_echoes_raw_text(self):
        error = _error_of(parse_tool_arguments("t", "{", "c"))
        assert "Invalid JSON in tool arguments" in error
        assert "Raw arguments: {" in error

    @pytest.mark.parametrize("raw", ["null", "[1, 2]", "3", '"text"'])
    def test_non_objects_rejected(self, raw):
        error = _error_of(parse_tool_arguments("t", raw, "c"))
        assert "must be a JSON object" in error

    def test_undefined_rejected(self):
        error = _error_of(parse_tool_arguments("t", "undefined", "c"))
        assert "Invalid JSON" in error


class TestCheckRequiredArguments:
    REQUIRED = ("file_path",)

    def test_present(self):
        assert check_required_arguments("read_file", {"file_path": "a"}, self.REQUIRED, "c").ok

    def test_extra_fields_ignored(self):
        result = check_required_arguments(
            "read_file", {"file_path": "a", "other": 1}, self.REQUIRED, "c"
        )
        assert result.ok

    def test_missing(self):
        error = _error_of(check_required_arguments("read_file", {}, self.REQUIRED, "c"))
        assert "file_path" in error


class TestExtractToolCallHistory:
    def test_only_successful_calls_collected(self):
        messages = [
            Message.user("hi"),
            Message.tool(
                name="read_file",
                tool_call_id="a",
                content=json.dumps({"content": "x"}),
                tool_args={"file_path": "a.txt", "read_for_write": True},
            ),
            Message.tool(
                name="grep",
                tool_call_id="b",
                content=json.dumps({"error": 0}),
                tool_args={"pattern": "x"},
            ),
            Message.tool(
                name="list_files",
                tool_call_id="c",
                content="not json",
                tool_args={},
            ),
        ]
        calls, last = extract_tool_call_history(messages)
        assert [c.name for c in calls] == ["read_file"]
        assert last.args == {"file_path": "a.txt", "read_for_write": True}

    def test_empty(self):
        calls, last = extract_tool_call_history([Message.user("hi")])
        assert calls == ()
        assert last is None
