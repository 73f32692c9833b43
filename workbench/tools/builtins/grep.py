from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

from workbench.tools.base import BaseTool
from workbench.tools.builtins.walk import walk_files
from workbench.tools.patterns import matches_simple_pattern
from workbench.tools.responses import serialize_payload, tool_error

if TYPE_CHECKING:
    from pathlib import Path

    from workbench.tools.context import ToolContext
    from workbench.tools.path_validator import PathValidator

logger = structlog.get_logger()

MAX_MATCHES = 200
MAX_FILE_BYTES = 5 * 1024 * 1024
MAX_RESULT_KB = 20


class GrepTool(BaseTool):
    """Regex search over project file contents."""

    def __init__(self, validator: PathValidator) -> None:
        self._validator = validator

    @property
    def name(self) -> str:
        return "grep"

    @property
    def description(self) -> str:
        return (
            "Search file contents with a regular expression (case-insensitive by "
            "default). Returns up to 200 matches as file, line number and line text."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "pattern": {"type": "string", "description": "Regular expression."},
                "directory_path": {
                    "type": "string",
                    "description": "Directory to search from. Defaults to '.'.",
                },
                "file_pattern": {
                    "type": "string",
                    "description": "Only search files whose name matches this glob, e.g. '*.py'.",
                },
                "include_gitignored": {
                    "type": "boolean",
                    "description": "Also search paths matched by .gitignore.",
                },
                "case_sensitive": {
                    "type": "boolean",
                    "description": "Match case exactly. Defaults to false.",
                },
            },
            "required": ["pattern"],
        }

    def _search_file(
        self, path: Path, regex: re.Pattern[str], matches: list[dict]
    ) -> None:
        try:
            if path.stat().st_size > MAX_FILE_BYTES:
                return
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return
        rel = self._validator.relative(path)
        for number, line in enumerate(content.split("\n"), start=1):
            if regex.search(line):
                matches.append({"file": rel, "line": number, "content": line.strip()})
                if len(matches) >= MAX_MATCHES:
                    return

    async def execute(
        self, arguments: dict, context: ToolContext | None = None
    ) -> dict:
        pattern = arguments.get("pattern", "")
        directory_path = arguments.get("directory_path") or "."
        file_pattern = arguments.get("file_pattern")
        include_ignored = bool(arguments.get("include_gitignored", False))
        case_sensitive = bool(arguments.get("case_sensitive", False))

        check = self._validator.for_directory(
            directory_path, "search", include_ignored=include_ignored
        )
        if not check.valid:
            return tool_error(check.error)

        try:
            regex = re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)
        except re.error as e:
            return tool_error(f"Invalid regex pattern: {e}")

        matches: list[dict] = []
        for path in walk_files(
            self._validator, check.absolute_path, include_ignored=include_ignored
        ):
            if file_pattern and not matches_simple_pattern(path.name, file_pattern):
                continue
            self._search_file(path, regex, matches)
            if len(matches) >= MAX_MATCHES:
                break

        result: dict = {
            "pattern": pattern,
            "directory": directory_path,
            "case_sensitive": case_sensitive,
        }
        if file_pattern:
            result["file_pattern"] = file_pattern
        result["count"] = len(matches)
        if len(matches) >= MAX_MATCHES:
            result["truncated"] = True
            result["message"] = (
                f"Found {MAX_MATCHES}+ matches, showing first {MAX_MATCHES}. "
                "Use a more specific pattern or file_pattern."
            )
        result["matches"] = matches

        size_kb = len(serialize_payload(result).encode("utf-8")) / 1024
        if size_kb > MAX_RESULT_KB:
            logger.info("grep_result_too_large", size_kb=round(size_kb), matches=len(matches))
            return tool_error(
                f"Search results too large ({round(size_kb)}KB > {MAX_RESULT_KB}KB limit). "
                f"Found {len(matches)} matches. Please refine your search with:\n"
                "- More specific pattern\n"
                '- Use file_pattern to filter file types (e.g., "*.py")\n'
                "- Search a more specific directory_path",
                pattern=pattern,
                directory=directory_path,
                matches_found=len(matches),
                size_kb=round(size_kb),
            )
        return result
