"""User consent for tool calls outside the allow-list.

At most one request is outstanding per gate. The UI resolves it through
``grant()`` / ``deny()``; cancelling the turn while waiting counts as a denial.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Collection
from dataclasses import dataclass, field
from typing import Any

import structlog

from workbench.infra.errors import PermissionPendingError

logger = structlog.get_logger()

# Pseudo-tool asked when the per-turn iteration cap is reached.
CONTINUE_EXECUTION = "continue_execution"

PERMISSION_DENIED_ERROR = "Permission denied by user. STOP IMMEDIATELY."


def requires_permission(tool_name: str, allowed_tools: Collection[str]) -> bool:
    if tool_name == CONTINUE_EXECUTION:
        return True
    return tool_name not in allowed_tools


@dataclass(eq=False)
class PermissionRequest:
    """A pending consent decision for one tool call."""

    tool_name: str
    args: dict[str, Any]
    _future: asyncio.Future[bool] = field(repr=False)

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def grant(self) -> None:
        self._resolve(True)

    def deny(self) -> None:
        self._resolve(False)

    def _resolve(self, allowed: bool) -> None:
        if not self._future.done():
            self._future.set_result(allowed)


class PermissionGate:
    """Owns the single outstanding PermissionRequest."""

    def __init__(self) -> None:
        self._pending: PermissionRequest | None = None

    @property
    def pending(self) -> PermissionRequest | None:
        return self._pending

    def open_request(self, tool_name: str, args: dict[str, Any]) -> PermissionRequest:
        if self._pending is not None and not self._pending.resolved:
            raise PermissionPendingError(
                f"A permission request for {self._pending.tool_name} is already pending"
            )
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pending = PermissionRequest(tool_name=tool_name, args=args, _future=future)
        logger.info("permission_requested", tool_name=tool_name)
        return self._pending

    async def wait(
        self, request: PermissionRequest, cancel: asyncio.Event | None = None
    ) -> bool:
        """Suspend until the request is resolved. Cancellation resolves it as denied."""
        cancelled: asyncio.Task | None = None
        try:
            if cancel is None:
                allowed = await request._future
            else:
                cancelled = asyncio.create_task(cancel.wait())
                await asyncio.wait(
                    {request._future, cancelled},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if not request.resolved:
                    request.deny()
                allowed = request._future.result()
        finally:
            if cancelled is not None and not cancelled.done():
                cancelled.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await cancelled
            if self._pending is request:
                self._pending = None

        logger.info("permission_resolved", tool_name=request.tool_name, allowed=allowed)
        return allowed
