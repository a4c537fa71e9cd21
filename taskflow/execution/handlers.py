"""Per-kind task dispatch.

Each handler turns one Task into one TaskResult. Model work goes through the
orchestrator, file and analysis work through the tool registry, and shell/test
work through the command runner.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Tuple

from taskflow.models.gateway import ChatRequest
from taskflow.models.orchestrator import MultiModelOrchestrator
from taskflow.plan.prompts import CODE_TASK_PROMPT, DESIGN_TASK_PROMPT
from taskflow.plan.schema import Task, TaskResult
from taskflow.tools.registry import ToolRegistry
from taskflow.utils.error_handler import TaskDispatchFailure

from .cancellation import CancellationSignal
from .shell import CommandRunner, parse_command

LOGGER = logging.getLogger(__name__)

FENCE = re.compile(r"^```[\w+-]*\n(?P<body>[\s\S]*?)\n?```\s*$")

COMMENT_PREFIX = {
    ".py": "#",
    ".sh": "#",
    ".rb": "#",
    ".yaml": "#",
    ".yml": "#",
    ".toml": "#",
    ".js": "//",
    ".jsx": "//",
    ".ts": "//",
    ".tsx": "//",
    ".go": "//",
    ".rs": "//",
    ".java": "//",
}

Handler = Callable[[Task, Optional[CancellationSignal]], Awaitable[TaskResult]]


def strip_code_fence(text: str) -> str:
    match = FENCE.match(text.strip())
    return match.group("body") if match else text


def code_template(task: Task) -> str:
    """Placeholder file content used when no model backend is configured."""
    suffix = Path(task.output_path or "").suffix.lower()
    if suffix == ".md":
        return f"# {task.title}\n\n{task.description}\n"
    prefix = COMMENT_PREFIX.get(suffix)
    if prefix is None:
        return f"{task.title}\n\n{task.description}\n"
    lines = [f"{prefix} {task.title}", f"{prefix} {task.description}" if task.description else prefix]
    if suffix == ".py":
        lines += ["", "", "def main():", f"    raise NotImplementedError({task.title!r})", ""]
    return "\n".join(lines) + "\n"


def design_template(task: Task) -> str:
    return (
        f"# {task.title}\n\n"
        f"## Goal\n\n{task.description or 'TBD'}\n\n"
        "## Components\n\n- TBD\n\n"
        "## Data Flow\n\n- TBD\n\n"
        "## Risks\n\n- TBD\n"
    )


class TaskDispatcher:
    """Dispatches a task to the handler registered for its kind."""

    def __init__(
        self,
        *,
        tools: ToolRegistry,
        project_path: str,
        orchestrator: Optional[MultiModelOrchestrator] = None,
        runner: Optional[CommandRunner] = None,
        test_command: str = "pytest -q",
        command_timeout_s: Optional[float] = None,
    ) -> None:
        self.tools = tools
        self.project_path = Path(project_path).resolve()
        self.orchestrator = orchestrator
        self.runner = runner or CommandRunner()
        self.test_command = test_command
        self.command_timeout_s = command_timeout_s
        self._handlers: Dict[str, Handler] = {
            "code": self._code,
            "design": self._design,
            "file": self._file,
            "shell": self._shell,
            "test": self._test,
            "analysis": self._analysis,
        }

    async def dispatch(self, task: Task, cancel_token: Optional[CancellationSignal] = None) -> TaskResult:
        handler = self._handlers.get(task.kind)
        if handler is None:
            raise TaskDispatchFailure(task.id, f"No handler for task kind '{task.kind}'")
        return await handler(task, cancel_token)

    # -- content tasks -------------------------------------------------
    async def _generate(self, prompt: str, fallback: str, cancel_token) -> Tuple[str, Optional[str]]:
        """Return generated content and the backend that produced it."""
        if self.orchestrator is None:
            return fallback, None
        response = await self.orchestrator.chat(
            ChatRequest.from_prompt(prompt, temperature=0.2),
            cancel_token,
        )
        return strip_code_fence(response.content), response.backend

    async def _write_artifact(self, task: Task, content: str, backend: Optional[str]) -> TaskResult:
        if not task.output_path:
            return TaskResult(task_id=task.id, success=True, output=content)

        result = await self.tools.invoke("file_write", {"path": task.output_path, "content": content})
        if not result.success:
            return TaskResult(task_id=task.id, success=False, error=result.error)

        written = (result.data or {}).get("path") or str(self.project_path / task.output_path)
        note = f" via {backend}" if backend else ""
        return TaskResult(
            task_id=task.id,
            success=True,
            output=f"Generated {written}{note}",
            artifacts=(written,),
        )

    async def _code(self, task: Task, cancel_token) -> TaskResult:
        prompt = CODE_TASK_PROMPT.format(
            output_path=task.output_path or "(inline)",
            title=task.title,
            description=task.description,
            tags=", ".join(task.tags) or "-",
        )
        content, backend = await self._generate(prompt, code_template(task), cancel_token)
        return await self._write_artifact(task, content, backend)

    async def _design(self, task: Task, cancel_token) -> TaskResult:
        prompt = DESIGN_TASK_PROMPT.format(title=task.title, description=task.description)
        content, backend = await self._generate(prompt, design_template(task), cancel_token)
        return await self._write_artifact(task, content, backend)

    async def _file(self, task: Task, cancel_token) -> TaskResult:
        if not task.output_path:
            return TaskResult(task_id=task.id, success=True, output="No output path, nothing to write")
        return await self._write_artifact(task, task.description, None)

    # -- command tasks -------------------------------------------------
    async def _run(self, task: Task, command: str, cancel_token) -> TaskResult:
        result = await self.runner.run(
            command,
            cwd=self.project_path,
            timeout_s=self.command_timeout_s,
            cancel_token=cancel_token,
        )
        if result.ok:
            return TaskResult(task_id=task.id, success=True, output=result.stdout or "Command completed (no output)")
        return TaskResult(task_id=task.id, success=False, output=result.stdout or None, error=result.describe_failure())

    async def _shell(self, task: Task, cancel_token) -> TaskResult:
        command = parse_command(task.description)
        if not command:
            return TaskResult(task_id=task.id, success=False, error="No command found in task description")
        return await self._run(task, command, cancel_token)

    async def _test(self, task: Task, cancel_token) -> TaskResult:
        command = parse_command(task.description) or self.test_command
        return await self._run(task, command, cancel_token)

    # -- analysis ------------------------------------------------------
    async def _analysis(self, task: Task, cancel_token) -> TaskResult:
        result = await self.tools.invoke("project_analyze", {"path": str(self.project_path)})
        if not result.success:
            return TaskResult(task_id=task.id, success=False, error=result.error)
        return TaskResult(
            task_id=task.id,
            success=True,
            output=json.dumps(result.data, indent=2, ensure_ascii=False, default=str),
        )


__all__ = ["TaskDispatcher", "code_template", "design_template", "strip_code_fence"]
