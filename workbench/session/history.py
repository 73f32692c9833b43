"""Transcript persistence: <config_dir>/history.json.

Entries are validated one by one on load; anything that does not decode to a
Message (no role, unknown role, wrong field types) is dropped with a warning
rather than failing the whole file.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError

from workbench.session.models import Message

logger = structlog.get_logger()

HISTORY_FILE_NAME = "history.json"

_message_adapter: TypeAdapter[Message] = TypeAdapter(Message)


class HistoryStore:
    """Load and save the transcript of the current project."""

    def __init__(self, config_dir: Path) -> None:
        self._path = config_dir / HISTORY_FILE_NAME

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[Message]:
        if not self._path.is_file():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("history_unreadable", path=str(self._path), error=str(e))
            return []
        if not isinstance(raw, list):
            logger.warning("history_not_a_list", path=str(self._path))
            return []

        messages: list[Message] = []
        dropped = 0
        for entry in raw:
            if not isinstance(entry, dict) or not entry.get("role"):
                dropped += 1
                continue
            try:
                messages.append(_message_adapter.validate_python(entry))
            except ValidationError:
                dropped += 1
        if dropped:
            logger.warning("history_entries_dropped", dropped=dropped, kept=len(messages))
        logger.info("history_loaded", messages=len(messages))
        return messages

    def save(self, messages: Sequence[Message]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [
            _message_adapter.dump_python(m, mode="json", exclude_none=True)
            for m in messages
        ]
        self._path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"
        )
        logger.debug("history_saved", messages=len(messages))

    def delete(self) -> None:
        self._path.unlink(missing_ok=True)
        logger.info("history_deleted", path=str(self._path))
