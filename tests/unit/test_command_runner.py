"""Tests for command parsing and subprocess lifecycle."""

import asyncio

import pytest

from taskflow.execution.cancellation import CancellationToken, run_cancellable
from taskflow.execution.shell import CommandResult, CommandRunner, parse_command
from taskflow.utils.error_handler import RunCancelled


class TestParseCommand:
    @pytest.mark.parametrize(
        "description,expected",
        [
            ("Run: npm install", "npm install"),
            ("run pytest -q", "pytest -q"),
            ("Execute: make build", "make build"),
            ("command: `ls -la`", "ls -la"),
            ("Please RUN: echo hi", "echo hi"),
        ],
    )
    def test_extracts_command(self, description, expected):
        assert parse_command(description) == expected

    @pytest.mark.parametrize("description", ["", "Implement the parser", "Run:   "])
    def test_no_command(self, description):
        assert parse_command(description) is None


class TestCommandResult:
    def test_ok_requires_zero_exit(self):
        assert CommandResult(command="x", returncode=0).ok
        assert not CommandResult(command="x", returncode=1).ok
        assert not CommandResult(command="x", returncode=None, timed_out=True).ok

    def test_describe_failure(self):
        assert "timeout" in CommandResult(command="x", returncode=None, timed_out=True).describe_failure()
        assert "cancelled" in CommandResult(command="x", returncode=None, cancelled=True).describe_failure()
        message = CommandResult(command="x", returncode=2, stderr="bad flag").describe_failure()
        assert "exit code 2" in message
        assert "bad flag" in message


class TestCommandRunner:
    @pytest.mark.asyncio
    async def test_captures_output(self, tmp_path):
        result = await CommandRunner().run("echo out; echo err 1>&2", cwd=tmp_path)
        assert result.ok
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        runner = CommandRunner()
        result = await runner.run("sleep 5", cwd=tmp_path, timeout_s=0.2)
        assert result.timed_out
        assert runner.active_count == 0

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, tmp_path):
        """Should stop a running command promptly when the token fires."""
        token = CancellationToken()
        runner = CommandRunner()

        async def cancel_soon():
            await asyncio.sleep(0.2)
            token.cancel("user abort")

        canceller = asyncio.create_task(cancel_soon())
        result = await asyncio.wait_for(runner.run("sleep 10", cwd=tmp_path, cancel_token=token), 5)
        await canceller

        assert result.cancelled
        assert runner.active_count == 0

    @pytest.mark.asyncio
    async def test_aclose_with_nothing_running(self):
        runner = CommandRunner()
        await runner.aclose()
        assert runner.active_count == 0


class TestCancellationToken:
    def test_cancel_is_idempotent(self):
        token = CancellationToken("run-1")
        token.cancel("first")
        token.cancel("second")
        assert token.is_cancelled()
        assert token.reason == "first"

    def test_raise_if_cancelled(self):
        token = CancellationToken("run-1")
        token.raise_if_cancelled()
        token.cancel("stop")
        with pytest.raises(RunCancelled, match="run-1"):
            token.raise_if_cancelled("dispatch")

    @pytest.mark.asyncio
    async def test_cancel_from_another_thread(self):
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        await asyncio.to_thread(token.cancel, "from thread")
        await asyncio.wait_for(waiter, 1)
        assert token.reason == "from thread"

    @pytest.mark.asyncio
    async def test_run_cancellable_returns_result(self):
        async def work():
            return 42

        assert await run_cancellable(work(), CancellationToken(), 1) == 42

    @pytest.mark.asyncio
    async def test_run_cancellable_timeout(self):
        with pytest.raises(asyncio.TimeoutError):
            await run_cancellable(asyncio.sleep(5), CancellationToken(), 0.05)
