from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class TodoItem:
    task: str
    completed: bool = False


class TaskList:
    """In-process todo list shown to the model as "Current Tasks"."""

    def __init__(self) -> None:
        self._items: tuple[TodoItem, ...] = ()

    @property
    def items(self) -> tuple[TodoItem, ...]:
        return self._items

    def replace(self, items: Iterable[TodoItem]) -> None:
        self._items = tuple(items)
        logger.info(
            "todos_updated",
            total=len(self._items),
            completed=sum(1 for item in self._items if item.completed),
        )

    def clear(self) -> None:
        self._items = ()

    def __len__(self) -> int:
        return len(self._items)

    def render(self) -> str:
        """Markdown checklist, one line per item."""
        return "\n".join(
            f"- [{'x' if item.completed else ' '}] {item.task}" for item in self._items
        )
