"""Run external commands for shell and test tasks."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Set, Union

from taskflow.utils.error_handler import RunCancelled

from .cancellation import CancellationSignal, run_cancellable

LOGGER = logging.getLogger(__name__)

COMMAND_PATTERN = re.compile(r"\b(?:run|execute|command):?\s*(.+)", re.IGNORECASE)
MAX_OUTPUT_CHARS = 20_000


def parse_command(description: str) -> Optional[str]:
    """Extract the command from text such as ``"Run: npm install"``."""
    match = COMMAND_PATTERN.search(description or "")
    if not match:
        return None
    command = match.group(1).strip().strip("`").strip()
    return command or None


@dataclass(frozen=True)
class CommandResult:
    command: str
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled

    def describe_failure(self) -> str:
        if self.cancelled:
            return f"Command cancelled: {self.command}"
        if self.timed_out:
            return f"Command timeout: {self.command}"
        detail = self.stderr.strip() or self.stdout.strip()
        message = f"Command failed (exit code {self.returncode}): {self.command}"
        return f"{message}\n{detail}" if detail else message


def _command_env(cwd: Path) -> Dict[str, str]:
    env = dict(os.environ)
    python_dir = str(Path(sys.executable).parent)
    env["PATH"] = os.pathsep.join([python_dir, env.get("PATH", "/usr/bin:/bin")])
    env["TASKFLOW_PROJECT_PATH"] = str(cwd)
    if sys.prefix != sys.base_prefix:
        env["VIRTUAL_ENV"] = sys.prefix
    return env


def _decode(data: Optional[bytes]) -> str:
    text = (data or b"").decode("utf-8", errors="replace")
    if len(text) > MAX_OUTPUT_CHARS:
        return text[:MAX_OUTPUT_CHARS] + "\n... (truncated)"
    return text


class CommandRunner:
    """Spawns shell commands and kills them on timeout, cancellation or close."""

    def __init__(self) -> None:
        self._active: Set[asyncio.subprocess.Process] = set()

    @property
    def active_count(self) -> int:
        return len(self._active)

    async def run(
        self,
        command: str,
        *,
        cwd: Union[str, Path],
        timeout_s: Optional[float] = None,
        cancel_token: Optional[CancellationSignal] = None,
    ) -> CommandResult:
        workdir = Path(cwd).resolve()
        LOGGER.info(f"Executing command in {workdir}: {command}")

        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(workdir),
            env=_command_env(workdir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._active.add(process)
        try:
            stdout, stderr = await run_cancellable(process.communicate(), cancel_token, timeout_s)
        except asyncio.TimeoutError:
            await self._kill(process)
            return CommandResult(command=command, returncode=None, timed_out=True)
        except RunCancelled:
            await self._kill(process)
            return CommandResult(command=command, returncode=None, cancelled=True)
        except asyncio.CancelledError:
            await self._kill(process)
            raise
        finally:
            self._active.discard(process)

        return CommandResult(
            command=command,
            returncode=process.returncode,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()

    async def aclose(self) -> None:
        """Kill every command that is still running."""
        for process in list(self._active):
            LOGGER.warning(f"Killing running command (pid {process.pid})")
            await self._kill(process)
        self._active.clear()


__all__ = ["CommandResult", "CommandRunner", "parse_command"]
