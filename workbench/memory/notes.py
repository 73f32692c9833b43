"""Project-scoped notes kept inside the reserved configuration directory.

- memory.md: persistent memories, one timestamped bullet per entry
- context.md: free-form project context written by the agent
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import structlog

logger = structlog.get_logger()

MEMORY_FILE_NAME = "memory.md"
CONTEXT_FILE_NAME = "context.md"

_MEMORY_HEADER = "# Persistent Memories\n\n"


class ProjectNotes:
    """Read and write memories and project context for one project."""

    def __init__(self, config_dir: Path) -> None:
        self._config_dir = config_dir

    @property
    def memory_path(self) -> Path:
        return self._config_dir / MEMORY_FILE_NAME

    @property
    def context_path(self) -> Path:
        return self._config_dir / CONTEXT_FILE_NAME

    def load_memories(self) -> list[str]:
        """Return memory entries without the bullet prefix. Missing file -> []."""
        text = self._read(self.memory_path)
        return [
            line[2:].strip()
            for line in text.splitlines()
            if line.startswith("- ") and line[2:].strip()
        ]

    def add_memory(self, text: str, *, now: datetime | None = None) -> str:
        """Append one entry and return it as written."""
        text = " ".join(text.split())
        if not text:
            raise ValueError("memory text must not be empty")
        stamp = (now or datetime.now(UTC)).isoformat(timespec="seconds")
        entry = f"[{stamp}] {text}"

        self._config_dir.mkdir(parents=True, exist_ok=True)
        existing = self._read(self.memory_path) or _MEMORY_HEADER
        if not existing.endswith("\n"):
            existing += "\n"
        self.memory_path.write_text(f"{existing}- {entry}\n", encoding="utf-8")
        logger.info("memory_added", chars=len(text))
        return entry

    def clear_memories(self) -> int:
        """Delete all memories. Returns how many entries were removed."""
        count = len(self.load_memories())
        self.memory_path.unlink(missing_ok=True)
        logger.info("memories_cleared", count=count)
        return count

    def load_context(self) -> str:
        return self._read(self.context_path).strip()

    def write_context(self, content: str) -> Path:
        self._config_dir.mkdir(parents=True, exist_ok=True)
        self.context_path.write_text(content, encoding="utf-8")
        logger.info("project_context_written", chars=len(content))
        return self.context_path

    @staticmethod
    def _read(path: Path) -> str:
        if not path.is_file():
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("note_file_unreadable", path=str(path), error=str(e))
            return ""
