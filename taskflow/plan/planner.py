"""Planning collaborators: turn an AgentRequest into an immutable TaskPlan."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

import yaml
from pydantic import ValidationError

from taskflow.execution.cancellation import CancellationSignal
from taskflow.models.gateway import ChatRequest
from taskflow.models.orchestrator import MultiModelOrchestrator
from taskflow.utils.error_handler import ModelUnavailable, PlanningFailure
from taskflow.utils.logging_utils import log_prompt

from .prompts import ANALYSIS_PROMPT, PLANNER_SYSTEM_PROMPT, TASK_GENERATION_PROMPT
from .request import AgentRequest
from .schema import Dependency, Task, TaskPlan

LOGGER = logging.getLogger(__name__)

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
TASK_KINDS = {"code", "file", "shell", "analysis", "design", "test"}
PRIORITIES = {"critical", "high", "medium", "low"}


class Planner(Protocol):
    async def plan(
        self,
        request: AgentRequest,
        fix_plan: Optional[TaskPlan] = None,
        cancel_token: Optional[CancellationSignal] = None,
    ) -> TaskPlan:
        ...


def extract_json(text: str) -> Dict[str, Any]:
    """Parse the outermost JSON object found in a model answer."""
    match = JSON_OBJECT.search(text or "")
    if not match:
        raise ValueError("No JSON object found in model output")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Model output is not a JSON object")
    return data


def task_id_for(index: int) -> str:
    return f"T{index + 1:03d}"


def enrich_tasks(raw_tasks: Sequence[Dict[str, Any]]) -> List[Task]:
    """Normalise model-produced task dicts into Tasks with ids T001, T002, ..."""
    known_ids = {task_id_for(index) for index in range(len(raw_tasks))}
    tasks: List[Task] = []

    for index, raw in enumerate(raw_tasks):
        if not isinstance(raw, dict):
            LOGGER.warning(f"Skipping non-object task entry at position {index}")
            continue
        task_id = task_id_for(index)
        kind = str(raw.get("kind") or raw.get("type") or "code").lower()
        priority = str(raw.get("priority") or "medium").lower()
        dependencies = [
            str(dep) for dep in (raw.get("dependencies") or [])
            if str(dep) in known_ids and str(dep) != task_id
        ]
        try:
            task = Task(
                id=task_id,
                title=str(raw.get("title") or f"Task {index + 1}"),
                description=str(raw.get("description") or ""),
                kind=kind if kind in TASK_KINDS else "code",
                priority=priority if priority in PRIORITIES else "medium",
                estimate=float(raw.get("estimate") or 4),
                dependencies=dependencies,
                output_path=raw.get("output_path") or raw.get("outputPath"),
                tags=[str(tag).lower() for tag in (raw.get("tags") or [])],
            )
        except (ValidationError, TypeError, ValueError) as e:
            LOGGER.warning(f"Skipping invalid task {task_id}: {e}")
            continue
        tasks.append(task)

    return tasks


def has_implicit_dependency(first: Task, second: Task) -> bool:
    """Ordering rules inferred from task kinds and tags."""
    if first.kind == "analysis" and second.kind == "code":
        return True
    if "model" in first.tags and "api" in second.tags:
        return True
    if "component" in first.tags and "page" in second.tags:
        return True
    return False


def derive_dependencies(tasks: Sequence[Task]) -> List[Dependency]:
    """Explicit edges become ``blocks``; inferred ones become ``depends-on``."""
    dependencies: List[Dependency] = []
    for i, first in enumerate(tasks):
        for second in tasks[i + 1:]:
            if first.id in second.dependencies:
                dependencies.append(Dependency(source=first.id, target=second.id, kind="blocks"))
            if has_implicit_dependency(first, second):
                dependencies.append(Dependency(source=first.id, target=second.id, kind="depends-on"))
    return dependencies


def default_tasks(request: AgentRequest) -> List[Task]:
    return [
        Task(
            id="T001",
            title="Setup Project Structure",
            description="Run: mkdir -p src tests",
            kind="shell",
            priority="high",
            estimate=2,
            tags=["setup"],
        ),
        Task(
            id="T002",
            title="Implement Core Feature",
            description=request.description or "Implement the main feature",
            kind="code",
            priority="high",
            estimate=8,
            dependencies=["T001"],
            tags=["core"],
        ),
        Task(
            id="T003",
            title="Write Tests",
            description="Add unit tests for the feature",
            kind="test",
            priority="medium",
            estimate=4,
            dependencies=["T002"],
            tags=["test"],
        ),
    ]


def default_plan(request: AgentRequest) -> TaskPlan:
    tasks = default_tasks(request)
    return TaskPlan.build(tasks, derive_dependencies(tasks))


def _bullets(items: Sequence[str]) -> str:
    return "\n".join(f"- {item}" for item in items) or "- (none)"


class LLMPlanner:
    """Plans through the multi-model orchestrator.

    Two model calls: requirements analysis, then task generation. When a
    retry brings a fix plan, that plan is adopted as the new plan.
    """

    def __init__(
        self,
        orchestrator: MultiModelOrchestrator,
        *,
        use_default_plan_on_error: bool = True,
        prompt_log_length: int = 2000,
    ) -> None:
        self.orchestrator = orchestrator
        self.use_default_plan_on_error = use_default_plan_on_error
        self.prompt_log_length = prompt_log_length

    async def plan(
        self,
        request: AgentRequest,
        fix_plan: Optional[TaskPlan] = None,
        cancel_token: Optional[CancellationSignal] = None,
    ) -> TaskPlan:
        if fix_plan is not None and fix_plan.tasks:
            LOGGER.info(f"Adopting fix plan with {len(fix_plan.tasks)} task(s)")
            return fix_plan

        try:
            analysis = await self._analyze(request, cancel_token)
            tasks = await self._generate_tasks(request, analysis, cancel_token)
        except (ModelUnavailable, ValueError) as e:
            if not self.use_default_plan_on_error:
                raise PlanningFailure(f"Planning failed: {e}", "Could not produce a task plan.") from e
            LOGGER.warning(f"Planning via model failed ({e}); using default plan")
            return default_plan(request)

        if not tasks:
            if not self.use_default_plan_on_error:
                raise PlanningFailure("Model produced no usable tasks", "The planner returned an empty plan.")
            LOGGER.warning("Model produced no usable tasks; using default plan")
            return default_plan(request)

        plan = TaskPlan.build(tasks, derive_dependencies(tasks))
        LOGGER.info(
            f"Plan created: {len(plan.tasks)} tasks, {plan.total_estimate:g}h, "
            f"critical path {' -> '.join(plan.critical_path)}"
        )
        return plan

    async def _ask(self, phase: str, prompt: str, cancel_token, *, temperature: float, max_tokens: int) -> Dict[str, Any]:
        log_prompt(LOGGER, phase, prompt, self.prompt_log_length)
        response = await self.orchestrator.chat(
            ChatRequest.from_prompt(prompt, system=PLANNER_SYSTEM_PROMPT, temperature=temperature, max_tokens=max_tokens),
            cancel_token,
        )
        try:
            return extract_json(response.content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON from {response.backend}: {e}") from e

    async def _analyze(self, request: AgentRequest, cancel_token) -> Dict[str, Any]:
        prompt = ANALYSIS_PROMPT.format(
            title=request.title,
            description=request.description,
            requirements=_bullets(
                [f"[{r.priority}] {r.title}: {r.description}" for r in request.requirements]
            ),
            acceptance_criteria=_bullets(list(request.acceptance_criteria)),
        )
        return await self._ask("analysis", prompt, cancel_token, temperature=0.3, max_tokens=2000)

    async def _generate_tasks(self, request: AgentRequest, analysis: Dict[str, Any], cancel_token) -> List[Task]:
        features = []
        for feature in analysis.get("features") or []:
            if isinstance(feature, dict):
                features.append(
                    f"{feature.get('name', 'Feature')} ({feature.get('complexity', 'medium')}): "
                    f"{feature.get('description', '')}"
                )
            else:
                features.append(str(feature))
        constraints = analysis.get("technical_constraints") or analysis.get("technicalConstraints") or []

        prompt = TASK_GENERATION_PROMPT.format(
            title=request.title,
            features=_bullets(features or [request.description or request.title]),
            constraints=_bullets([str(c) for c in constraints]),
        )
        data = await self._ask("task_generation", prompt, cancel_token, temperature=0.4, max_tokens=3000)
        raw_tasks = data.get("tasks") or []
        if not isinstance(raw_tasks, list):
            raise ValueError("'tasks' must be a list")
        return enrich_tasks(raw_tasks)


def load_plan(path: Union[str, Path]) -> TaskPlan:
    """Load a plan document (YAML or JSON) with ``tasks`` and optional ``dependencies``."""
    source = Path(path)
    text = source.read_text(encoding="utf-8")
    data = json.loads(text) if source.suffix.lower() == ".json" else (yaml.safe_load(text) or {})
    try:
        tasks = [Task.model_validate(item) for item in data.get("tasks") or []]
        dependencies = [Dependency.model_validate(item) for item in data.get("dependencies") or []]
    except ValidationError as e:
        raise PlanningFailure(f"Invalid plan file {source}: {e}", "The plan file is malformed.") from e
    return TaskPlan.build(tasks, dependencies)


class StaticPlanner:
    """Serves a fixed plan, and the fix plan on retries."""

    def __init__(self, plan: TaskPlan) -> None:
        self._plan = plan

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "StaticPlanner":
        return cls(load_plan(path))

    async def plan(
        self,
        request: AgentRequest,
        fix_plan: Optional[TaskPlan] = None,
        cancel_token: Optional[CancellationSignal] = None,
    ) -> TaskPlan:
        if fix_plan is not None and fix_plan.tasks:
            return fix_plan
        return self._plan


__all__ = [
    "LLMPlanner",
    "Planner",
    "StaticPlanner",
    "default_plan",
    "default_tasks",
    "derive_dependencies",
    "enrich_tasks",
    "extract_json",
    "has_implicit_dependency",
    "load_plan",
]
