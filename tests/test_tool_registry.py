"""Tests for ToolRegistry registration, schemas and serialized dispatch."""

from __future__ import annotations

import json

import pytest

from workbench.memory.notes import ProjectNotes
from workbench.memory.tasks import TaskList
from workbench.tools.base import BaseTool
from workbench.tools.builtins import register_builtins
from workbench.tools.context import ToolContext
from workbench.tools.path_validator import PathValidator
from workbench.tools.registry import ToolRegistry


class _StaticTool(BaseTool):
    def __init__(self, name: str = "static", result: dict | None = None) -> None:
        self._name = name
        self._result = result if result is not None else {"ok": True}

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Returns a fixed payload."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"x": {"type": "string"}},
            "required": ["x"],
        }

    async def execute(self, arguments: dict, context: ToolContext | None = None) -> dict:
        return self._result


class _ExplodingTool(_StaticTool):
    async def execute(self, arguments: dict, context: ToolContext | None = None) -> dict:
        raise RuntimeError("kaboom")


class TestRegistration:
    def test_register_and_get(self):
        registry = ToolRegistry()
        tool = _StaticTool()
        registry.register(tool)
        assert registry.get("static") is tool
        assert registry.get("missing") is None
        assert registry.names() == ["static"]

    def test_duplicate_rejected(self):
        registry = ToolRegistry()
        registry.register(_StaticTool())
        with pytest.raises(ValueError, match="already registered"):
            registry.register(_StaticTool())

    def test_schema_format(self):
        registry = ToolRegistry()
        registry.register(_StaticTool())
        schema = registry.get_tools_schema()
        assert schema == [
            {
                "type": "function",
                "function": {
                    "name": "static",
                    "description": "Returns a fixed payload.",
                    "parameters": {
                        "type": "object",
                        "properties": {"x": {"type": "string"}},
                        "required": ["x"],
                    },
                },
            }
        ]

    def test_schema_filtered_by_name(self):
        registry = ToolRegistry()
        registry.register(_StaticTool("a"))
        registry.register(_StaticTool("b"))
        schema = registry.get_tools_schema(["b", "missing"])
        assert [t["function"]["name"] for t in schema] == ["b"]

    def test_required_arguments(self):
        assert _StaticTool().required_arguments == ("x",)

    def test_builtins_registered(self, tmp_path):
        registry = ToolRegistry()
        register_builtins(
            registry, PathValidator(tmp_path), ProjectNotes(tmp_path / ".workbench"), TaskList()
        )
        assert sorted(registry.names()) == [
            "context_write",
            "delete_file",
            "edit_file",
            "execute_command",
            "find_files",
            "grep",
            "list_files",
            "manage_todos",
            "read_file",
            "write_file",
        ]


class TestExecute:
    @pytest.mark.asyncio()
    async def test_result_is_json_text(self):
        registry = ToolRegistry()
        registry.register(_StaticTool(result={"value": "é"}))
        text = await registry.execute("static", {"x": "1"}, ToolContext())
        assert json.loads(text) == {"value": "é"}

    @pytest.mark.asyncio()
    async def test_unknown_tool(self):
        text = await ToolRegistry().execute("nope", {}, ToolContext())
        assert json.loads(text) == {"error": "Unknown tool: nope"}

    @pytest.mark.asyncio()
    async def test_exception_becomes_error_payload(self):
        registry = ToolRegistry()
        registry.register(_ExplodingTool())
        text = await registry.execute("static", {"x": "1"}, ToolContext())
        assert json.loads(text) == {"error": "Tool execution failed: kaboom"}
