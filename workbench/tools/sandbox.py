"""Command execution sandbox: spawn a shell command and supervise it.

Three termination races, first to fire wins:
- natural exit: buffered stdout/stderr and the exit code are returned
- timeout: the whole process group is killed
- cancellation (or an output buffer overflowing): the process tree is
  discovered breadth-first and killed deepest-first; the result is
  force-resolved after a grace period so a process that resists termination
  cannot hang the caller

Exactly one of CommandCompleted, CommandAborted or CommandFailed is produced
per invocation.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import psutil
import structlog

from workbench.infra.errors import SpawnError

logger = structlog.get_logger()

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
DEFAULT_ABORT_GRACE_MS = 2_000

_READ_CHUNK = 64 * 1024

AbortReason = Literal["cancelled", "timeout", "output_limit"]

_ABORT_MESSAGES: dict[str, str] = {
    "cancelled": (
        "ABORTED: The user cancelled this command. It was intentionally "
        "stopped and did not complete."
    ),
    "timeout": "ABORTED: Command exceeded its timeout and was killed.",
    "output_limit": "ABORTED: Command output exceeded the size limit and was killed.",
}


@dataclass(frozen=True)
class CommandCompleted:
    command: str
    stdout: str
    stderr: str
    exit_code: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
        }


@dataclass(frozen=True)
class CommandAborted:
    command: str
    stdout: str
    stderr: str
    reason: AbortReason = "cancelled"
    aborted: bool = field(default=True, init=False)

    @property
    def error(self) -> str:
        return _ABORT_MESSAGES[self.reason]

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "aborted": True,
            "reason": self.reason,
            "command": self.command,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


@dataclass(frozen=True)
class CommandFailed:
    error: str
    command: str
    stdout: str = ""
    stderr: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "command": self.command,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


CommandResult = CommandCompleted | CommandAborted | CommandFailed


class _OutputBuffer:
    """Byte buffer that stops growing at a cap and flags the overflow."""

    def __init__(self, limit: int, overflow: asyncio.Event) -> None:
        self._data = bytearray()
        self._limit = limit
        self._overflow = overflow

    def append(self, chunk: bytes) -> None:
        room = self._limit - len(self._data)
        if room > 0:
            self._data.extend(chunk[:room])
        if len(chunk) > room:
            self._overflow.set()

    def text(self) -> str:
        return self._data.decode("utf-8", errors="replace").strip()


async def _pump(stream: asyncio.StreamReader | None, buffer: _OutputBuffer) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        buffer.append(chunk)


async def _wait_exit(process: asyncio.subprocess.Process, readers: list[asyncio.Task]) -> int:
    # Pipes close before (or together with) process exit; drain them first so
    # no trailing output is lost.
    await asyncio.gather(*readers)
    return await process.wait()


def find_process_tree(pid: int) -> list[int]:
    """Breadth-first walk of the OS process table starting at pid.

    Returns pids in discovery order (parents before children). Lookup failures
    for individual processes are swallowed; the walk is best effort.
    """
    ordered: list[int] = []
    seen: set[int] = set()
    queue: deque[int] = deque([pid])

    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)
        ordered.append(current)
        try:
            children = psutil.Process(current).children()
        except psutil.Error:
            continue
        queue.extend(child.pid for child in children)

    return ordered


def kill_process_tree(pid: int) -> int:
    """Kill pid and all its descendants, deepest first. Returns the number signalled."""
    pids = find_process_tree(pid)
    logger.debug("process_tree_kill", pid=pid, total_processes=len(pids))
    killed = 0
    for target in reversed(pids):
        try:
            psutil.Process(target).kill()
            killed += 1
        except psutil.Error:
            continue
    return killed


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    if hasattr(os, "killpg"):
        try:
            os.killpg(process.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    with contextlib.suppress(ProcessLookupError):
        process.kill()


async def _spawn(command: str, cwd: Path) -> asyncio.subprocess.Process:
    try:
        return await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            # Own process group so a timeout can take the whole group down.
            start_new_session=True,
        )
    except OSError as e:
        raise SpawnError(str(e) or "Failed to execute command") from e


async def run_command(
    command: str,
    *,
    cwd: Path,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    cancel: asyncio.Event | None = None,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    abort_grace_ms: int = DEFAULT_ABORT_GRACE_MS,
) -> CommandResult:
    """Run a shell command in cwd and return exactly one outcome.

    timeout_ms <= 0 disables the timer. A cancel event that is already set
    short-circuits without spawning anything.
    """
    if cancel is not None and cancel.is_set():
        logger.info("command_pre_aborted", command=command)
        return CommandAborted(command=command, stdout="", stderr="")

    try:
        process = await _spawn(command, cwd)
    except SpawnError as e:
        logger.error("command_spawn_failed", command=command, error=str(e), code=e.code)
        return CommandFailed(error=str(e), command=command)

    overflow = asyncio.Event()
    stdout = _OutputBuffer(max_output_bytes, overflow)
    stderr = _OutputBuffer(max_output_bytes, overflow)
    readers = [
        asyncio.create_task(_pump(process.stdout, stdout)),
        asyncio.create_task(_pump(process.stderr, stderr)),
    ]
    exited = asyncio.create_task(_wait_exit(process, readers))
    overflowed = asyncio.create_task(overflow.wait())
    racers: set[asyncio.Task] = {exited, overflowed}

    timer: asyncio.Task | None = None
    if timeout_ms > 0:
        timer = asyncio.create_task(asyncio.sleep(timeout_ms / 1000))
        racers.add(timer)
    cancelled: asyncio.Task | None = None
    if cancel is not None:
        cancelled = asyncio.create_task(cancel.wait())
        racers.add(cancelled)

    logger.info("command_started", command=command, pid=process.pid, timeout_ms=timeout_ms)

    try:
        done, _ = await asyncio.wait(racers, return_when=asyncio.FIRST_COMPLETED)

        if exited in done:
            exit_code = exited.result()
            logger.info("command_completed", command=command, exit_code=exit_code)
            return CommandCompleted(
                command=command,
                stdout=stdout.text(),
                stderr=stderr.text(),
                exit_code=exit_code if exit_code is not None else 0,
            )

        reason: AbortReason
        if timer is not None and timer in done:
            reason = "timeout"
            _kill_process_group(process)
        else:
            reason = "output_limit" if overflowed in done else "cancelled"
            kill_process_tree(process.pid)
            _kill_process_group(process)

        # Some processes resist termination (or a grandchild keeps a pipe
        # open); stop waiting after the grace period.
        try:
            await asyncio.wait_for(asyncio.shield(exited), abort_grace_ms / 1000)
        except TimeoutError:
            logger.warning("command_force_resolved", command=command, pid=process.pid)

        logger.info("command_aborted", command=command, reason=reason)
        return CommandAborted(
            command=command,
            stdout=stdout.text(),
            stderr=stderr.text(),
            reason=reason,
        )
    finally:
        for task in (*racers, *readers):
            if not task.done():
                task.cancel()
        await asyncio.gather(*racers, *readers, return_exceptions=True)
