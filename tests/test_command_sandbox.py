"""Tests for run_command: exit, timeout, cancellation, output cap, spawn failure."""

from __future__ import annotations

import asyncio
import sys
import time

import pytest

from workbench.tools.sandbox import (
    CommandAborted,
    CommandCompleted,
    CommandFailed,
    find_process_tree,
    run_command,
)

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell required")


class TestNaturalExit:
    @pytest.mark.asyncio()
    async def test_echo(self, tmp_path):
        result = await run_command("echo hello", cwd=tmp_path)
        assert isinstance(result, CommandCompleted)
        assert result.stdout == "hello"
        assert result.exit_code == 0

    @pytest.mark.asyncio()
    async def test_exit_code_and_stderr(self, tmp_path):
        result = await run_command("echo oops >&2; exit 3", cwd=tmp_path)
        assert isinstance(result, CommandCompleted)
        assert result.exit_code == 3
        assert result.stderr == "oops"
        assert result.to_payload()["exit_code"] == 3

    @pytest.mark.asyncio()
    async def test_runs_in_cwd(self, tmp_path):
        (tmp_path / "marker.txt").write_text("x", encoding="utf-8")
        result = await run_command("ls", cwd=tmp_path)
        assert "marker.txt" in result.stdout


class TestTimeout:
    @pytest.mark.asyncio()
    async def test_sleep_killed_after_timeout(self, tmp_path):
        start = time.monotonic()
        result = await run_command("sleep 5", cwd=tmp_path, timeout_ms=100)
        elapsed = time.monotonic() - start

        assert isinstance(result, CommandAborted)
        assert result.reason == "timeout"
        assert result.aborted is True
        assert 0.1 <= elapsed < 0.5
        payload = result.to_payload()
        assert "error" in payload
        assert payload["aborted"] is True


class TestCancellation:
    @pytest.mark.asyncio()
    async def test_pre_aborted_spawns_nothing(self, tmp_path):
        cancel = asyncio.Event()
        cancel.set()
        result = await run_command(
            "touch should_not_exist", cwd=tmp_path, cancel=cancel
        )
        assert isinstance(result, CommandAborted)
        assert result.stdout == ""
        assert result.stderr == ""
        assert not (tmp_path / "should_not_exist").exists()

    @pytest.mark.asyncio()
    async def test_cancel_kills_process_tree(self, tmp_path):
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.2, cancel.set)
        start = time.monotonic()
        result = await run_command(
            "echo started; sleep 30 & sleep 30; wait",
            cwd=tmp_path,
            cancel=cancel,
            timeout_ms=0,
        )
        assert isinstance(result, CommandAborted)
        assert result.reason == "cancelled"
        assert result.stdout == "started"
        assert "cancelled" in result.error
        assert time.monotonic() - start < 5


class TestOutputLimit:
    @pytest.mark.asyncio()
    async def test_overflow_aborts(self, tmp_path):
        result = await run_command(
            "yes x", cwd=tmp_path, max_output_bytes=4096, timeout_ms=10_000
        )
        assert isinstance(result, CommandAborted)
        assert result.reason == "output_limit"
        assert len(result.stdout) <= 4096


class TestSpawnFailure:
    @pytest.mark.asyncio()
    async def test_missing_cwd_is_failed_result(self, tmp_path):
        result = await run_command("echo hi", cwd=tmp_path / "does-not-exist")
        assert isinstance(result, CommandFailed)
        assert result.error
        assert result.to_payload()["command"] == "echo hi"


class TestFindProcessTree:
    def test_unknown_pid_returns_only_itself(self):
        assert find_process_tree(2**22 + 12345) == [2**22 + 12345]
