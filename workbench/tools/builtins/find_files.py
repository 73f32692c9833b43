from __future__ import annotations

from typing import TYPE_CHECKING

from workbench.tools.base import BaseTool
from workbench.tools.builtins.walk import walk_files
from workbench.tools.patterns import matches_simple_pattern
from workbench.tools.responses import tool_error

if TYPE_CHECKING:
    from workbench.tools.context import ToolContext
    from workbench.tools.path_validator import PathValidator

MAX_RESULTS = 200


class FindFilesTool(BaseTool):
    """Recursive file-name search."""

    def __init__(self, validator: PathValidator) -> None:
        self._validator = validator

    @property
    def name(self) -> str:
        return "find_files"

    @property
    def description(self) -> str:
        return (
            "Recursively find files whose name matches a glob such as '*.py' or "
            "'test_*'. Returns up to 200 project-relative paths."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "pattern": {
                    "type": "string",
                    "description": "File name glob; * any run, ? one character. Defaults to '*'.",
                },
                "directory_path": {
                    "type": "string",
                    "description": "Directory to search from. Defaults to '.'.",
                },
                "include_gitignored": {
                    "type": "boolean",
                    "description": "Also search paths matched by .gitignore.",
                },
            },
            "required": [],
        }

    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        pattern = arguments.get("pattern") or "*"
        directory_path = arguments.get("directory_path") or "."
        include_ignored = bool(arguments.get("include_gitignored", False))

        check = self._validator.for_directory(
            directory_path, "search", include_ignored=include_ignored
        )
        if not check.valid:
            return tool_error(check.error)

        results: list[str] = []
        for path in walk_files(
            self._validator, check.absolute_path, include_ignored=include_ignored
        ):
            if matches_simple_pattern(path.name, pattern):
                results.append(self._validator.relative(path))
                if len(results) >= MAX_RESULTS:
                    break

        result: dict = {
            "pattern": pattern,
            "directory": directory_path,
            "count": len(results),
        }
        if len(results) >= MAX_RESULTS:
            result["truncated"] = True
            result["message"] = (
                f"Found {MAX_RESULTS}+ files, showing first {MAX_RESULTS}. "
                "Use a more specific pattern."
            )
        result["files"] = results
        return result
