"""Typed payloads exchanged between planning, execution and verification."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TaskKind = Literal["code", "file", "shell", "analysis", "design", "test"]
TaskPriority = Literal["critical", "high", "medium", "low"]
TaskStatus = Literal["pending", "in_progress", "completed", "failed", "blocked"]
DependencyKind = Literal["blocks", "depends-on"]
Severity = Literal["error", "warning", "info"]

_FROZEN = ConfigDict(frozen=True, extra="forbid")


class Task(BaseModel):
    """A single unit of work inside a plan."""

    model_config = _FROZEN

    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    kind: TaskKind = "code"
    priority: TaskPriority = "medium"
    estimate: float = Field(default=4.0, ge=0, description="Effort estimate in hours")
    dependencies: Tuple[str, ...] = ()
    output_path: Optional[str] = None
    tags: Tuple[str, ...] = ()

    @field_validator("dependencies", "tags", mode="before")
    @classmethod
    def _coerce_sequence(cls, value):
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return tuple(value)


class Dependency(BaseModel):
    """Edge ``source -> target``: target cannot start before source."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    source: str = Field(alias="from", min_length=1)
    target: str = Field(alias="to", min_length=1)
    kind: DependencyKind = "blocks"


class TaskPlan(BaseModel):
    """Immutable snapshot of tasks and dependency edges for one planning pass."""

    model_config = _FROZEN

    tasks: Tuple[Task, ...] = ()
    dependencies: Tuple[Dependency, ...] = ()
    total_estimate: float = Field(default=0.0, ge=0)
    critical_path: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def _unique_task_ids(self) -> "TaskPlan":
        seen = set()
        for task in self.tasks:
            if task.id in seen:
                raise ValueError(f"duplicate task id: {task.id}")
            seen.add(task.id)
        return self

    @classmethod
    def build(
        cls,
        tasks: Iterable[Task],
        dependencies: Iterable[Dependency] = (),
    ) -> "TaskPlan":
        """Create a plan with total estimate and critical path filled in."""
        from .graph import DependencyGraph

        tasks = tuple(tasks)
        dependencies = tuple(dependencies)
        graph = DependencyGraph.from_parts(tasks, dependencies)
        return cls(
            tasks=tasks,
            dependencies=dependencies,
            total_estimate=sum(task.estimate for task in tasks),
            critical_path=tuple(graph.critical_path()),
        )

    def task_ids(self) -> List[str]:
        return [task.id for task in self.tasks]

    def get(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None


class TaskResult(BaseModel):
    """Outcome of one dispatched task. Immutable once recorded."""

    model_config = _FROZEN

    task_id: str
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = Field(default=0, ge=0)
    artifacts: Tuple[str, ...] = ()


class ExecutionSummary(BaseModel):
    model_config = _FROZEN

    total_tasks: int = Field(ge=0)
    completed_tasks: int = Field(ge=0)
    failed_tasks: int = Field(ge=0)
    total_duration_ms: int = Field(ge=0)


class ExecutionResult(BaseModel):
    """Results of one execution pass, in dispatch order."""

    model_config = _FROZEN

    results: Tuple[TaskResult, ...] = ()
    summary: ExecutionSummary
    success: bool
    statuses: Dict[str, TaskStatus] = Field(default_factory=dict)
    cancelled: bool = False
    cycle_detected: bool = False
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_results(
        cls,
        plan: TaskPlan,
        results: Iterable[TaskResult],
        statuses: Optional[Dict[str, TaskStatus]] = None,
        *,
        cancelled: bool = False,
        cycle_detected: bool = False,
    ) -> "ExecutionResult":
        results = tuple(results)
        completed = sum(1 for r in results if r.success)
        failed = len(results) - completed
        summary = ExecutionSummary(
            total_tasks=len(plan.tasks),
            completed_tasks=completed,
            failed_tasks=failed,
            total_duration_ms=sum(r.duration_ms for r in results),
        )
        return cls(
            results=results,
            summary=summary,
            success=failed == 0,
            statuses=dict(statuses or {}),
            cancelled=cancelled,
            cycle_detected=cycle_detected,
        )

    def failed_results(self) -> List[TaskResult]:
        return [r for r in self.results if not r.success]

    def artifacts(self) -> List[str]:
        paths: List[str] = []
        for result in self.results:
            for artifact in result.artifacts:
                if artifact not in paths:
                    paths.append(artifact)
        return paths


class VerificationCheck(BaseModel):
    model_config = _FROZEN

    name: str
    passed: bool
    message: str
    severity: Severity = "info"
    details: Tuple[str, ...] = Field(default=(), description="Task ids or paths the check failed on")


class VerificationResult(BaseModel):
    model_config = _FROZEN

    checks: Tuple[VerificationCheck, ...] = ()
    all_passed: bool
    fix_tasks: Tuple[Task, ...] = ()

    @model_validator(mode="after")
    def _consistent(self) -> "VerificationResult":
        if self.all_passed != all(check.passed for check in self.checks):
            raise ValueError("all_passed must equal the AND of every check")
        if self.all_passed and self.fix_tasks:
            raise ValueError("fix tasks are only produced when a check failed")
        return self

    def failing_checks(self) -> List[VerificationCheck]:
        return [check for check in self.checks if not check.passed]


__all__ = [
    "Dependency",
    "DependencyKind",
    "ExecutionResult",
    "ExecutionSummary",
    "Severity",
    "Task",
    "TaskKind",
    "TaskPlan",
    "TaskPriority",
    "TaskResult",
    "TaskStatus",
    "VerificationCheck",
    "VerificationResult",
]
