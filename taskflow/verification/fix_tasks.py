"""Static mapping from failing checks to follow-up fix tasks."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from taskflow.plan.schema import (
    ExecutionResult,
    Task,
    TaskKind,
    TaskPlan,
    TaskPriority,
    VerificationCheck,
    VerificationResult,
)

from .checks import CODE_QUALITY, DEPENDENCIES, GENERATED_FILES, TASK_COMPLETION, TEST_COVERAGE


@dataclass(frozen=True, slots=True)
class FixTemplate:
    title: str
    kind: TaskKind
    priority: TaskPriority
    description: str
    estimate: float


FIX_TASK_TABLE: Dict[str, FixTemplate] = {
    TASK_COMPLETION: FixTemplate(
        title="Fix Failed Tasks",
        kind="code",
        priority="critical",
        description="Address failures: {message}",
        estimate=2,
    ),
    GENERATED_FILES: FixTemplate(
        title="Regenerate Missing Files",
        kind="code",
        priority="high",
        description="Regenerate files: {message}",
        estimate=2,
    ),
    CODE_QUALITY: FixTemplate(
        title="Fix Code Quality Issues",
        kind="code",
        priority="medium",
        description="Resolve quality issues: {message}",
        estimate=3,
    ),
    TEST_COVERAGE: FixTemplate(
        title="Add Unit Tests",
        kind="test",
        priority="medium",
        description="Improve coverage: {message}",
        estimate=3,
    ),
    DEPENDENCIES: FixTemplate(
        title="Install Dependencies",
        kind="shell",
        priority="high",
        description="Run: {install_command}",
        estimate=1,
    ),
}


def _slug(name: str) -> str:
    return name.lower().replace(" ", "-")


def build_fix_tasks(checks: Iterable[VerificationCheck], install_command: str = "") -> List[Task]:
    """One fix task per distinct failing check that has a table entry."""
    tasks: List[Task] = []
    seen = set()
    for check in checks:
        if check.passed or check.name in seen or check.name not in FIX_TASK_TABLE:
            continue
        seen.add(check.name)
        template = FIX_TASK_TABLE[check.name]
        tasks.append(
            Task(
                id=f"FIX{len(tasks) + 1:03d}",
                title=template.title,
                description=template.description.format(
                    message=check.message,
                    install_command=install_command or "pip install -e .",
                ),
                kind=template.kind,
                priority=template.priority,
                estimate=template.estimate,
                tags=("fix", _slug(check.name)),
            )
        )

    install = next((task for task in tasks if task.title == FIX_TASK_TABLE[DEPENDENCIES].title), None)
    if install is None:
        return tasks
    return [
        task if task is install else task.model_copy(update={"dependencies": (install.id,)})
        for task in tasks
    ]


# (namespace, id): plan task ids, fix task ids and file paths can collide.
Key = Tuple[str, str]


def _prefixed(prefix: str, title: str) -> str:
    return title if title.startswith(f"{prefix}: ") else f"{prefix}: {title}"


def _prerequisites(plan: TaskPlan, task: Task) -> List[str]:
    edges = [dep.source for dep in plan.dependencies if dep.target == task.id]
    return list(task.dependencies) + edges


def _unfinished(check: VerificationCheck, plan: Optional[TaskPlan], execution: Optional[ExecutionResult]) -> List[Task]:
    """Plan tasks that did not complete: failed, blocked or never reached."""
    if plan is None:
        return []
    if execution is not None and execution.statuses:
        return [task for task in plan.tasks if execution.statuses.get(task.id, "pending") != "completed"]
    failed = set(check.details)
    return [task for task in plan.tasks if task.id in failed]


def _regenerations(
    check: VerificationCheck,
    plan: Optional[TaskPlan],
    execution: Optional[ExecutionResult],
) -> List[Tuple[Optional[str], Task]]:
    """One task per missing or empty file, paired with the id of the task that produced it."""
    producers: Dict[str, str] = {}
    if execution is not None:
        for result in execution.results:
            for artifact in result.artifacts:
                producers.setdefault(artifact, result.task_id)

    tasks: List[Tuple[Optional[str], Task]] = []
    for path in check.details:
        producer = producers.get(path)
        source = plan.get(producer) if plan is not None and producer else None
        if source is None:
            source = Task(id="regenerate", title=Path(path).name, description=f"Regenerate {path}", kind="code")
        tasks.append((producer, source.model_copy(update={"output_path": path})))
    return tasks


def build_fix_plan(
    verification: VerificationResult,
    plan: Optional[TaskPlan] = None,
    execution: Optional[ExecutionResult] = None,
) -> TaskPlan:
    """Plan for the next pass, made from the verification's fix tasks.

    "Fix Failed Tasks" re-dispatches every unfinished task of ``plan`` with
    its kind, description and output path intact; "Regenerate Missing Files"
    becomes one task per missing or empty file, writing that file again.
    Without that context, and for every other check, the fix task itself is
    carried over. Ids are renumbered ``FIX001``.. in order.
    """
    failing = {check.name: check for check in verification.failing_checks()}
    retry_title = FIX_TASK_TABLE[TASK_COMPLETION].title
    regenerate_title = FIX_TASK_TABLE[GENERATED_FILES].title

    entries: List[Tuple[Key, Task, List[Key]]] = []
    retried: set = set()
    for fix in verification.fix_tasks:
        fix_deps: List[Key] = [("fix", dep) for dep in fix.dependencies]
        concrete: List[Tuple[Key, Task, List[Key]]] = []

        if fix.title == retry_title and TASK_COMPLETION in failing:
            sources = _unfinished(failing[TASK_COMPLETION], plan, execution)
            ids = {task.id for task in sources}
            for task in sources:
                prerequisites = [("plan", dep) for dep in _prerequisites(plan, task) if dep in ids]
                concrete.append((("plan", task.id), task, prerequisites + fix_deps))
            retried.update(ids)
        elif fix.title == regenerate_title and GENERATED_FILES in failing:
            for producer, task in _regenerations(failing[GENERATED_FILES], plan, execution):
                if producer in retried:
                    continue
                concrete.append((("file", task.output_path), task, list(fix_deps)))

        if not concrete:
            entries.append((("fix", fix.id), fix, fix_deps))
            continue
        for key, task, deps in concrete:
            update = {"title": _prefixed(fix.title, task.title), "priority": fix.priority, "tags": fix.tags}
            entries.append((key, task.model_copy(update=update), deps))

    ids_by_key = {key: f"FIX{index:03d}" for index, (key, _, _) in enumerate(entries, start=1)}
    tasks = [
        task.model_copy(
            update={
                "id": ids_by_key[key],
                "dependencies": tuple(ids_by_key[dep] for dep in deps if dep in ids_by_key),
            }
        )
        for key, task, deps in entries
    ]
    return TaskPlan.build(tasks)


__all__ = ["FIX_TASK_TABLE", "FixTemplate", "build_fix_plan", "build_fix_tasks"]
