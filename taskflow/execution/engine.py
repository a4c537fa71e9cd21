"""Dependency-ordered, strictly sequential task execution."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Optional, Protocol, Tuple

from taskflow.plan.graph import DependencyGraph
from taskflow.plan.schema import ExecutionResult, Task, TaskPlan, TaskResult, TaskStatus
from taskflow.utils.error_handler import CycleDetected, RunCancelled
from taskflow.utils.logging_utils import log_task_result

from .cancellation import CancellationSignal

LOGGER = logging.getLogger(__name__)


class Dispatcher(Protocol):
    async def dispatch(self, task: Task, cancel_token: Optional[CancellationSignal] = None) -> TaskResult:
        ...


def execution_order(
    plan: TaskPlan,
    graph: Optional[DependencyGraph] = None,
    cycle_policy: str = "fallback",
) -> Tuple[List[Task], bool]:
    """Tasks in dispatch order plus whether a cycle forced declaration order.

    Raises CycleDetected when ``cycle_policy`` is ``"reject"``.
    """
    graph = graph or DependencyGraph.from_plan(plan)
    ordered_ids = graph.topological_order()
    if len(ordered_ids) == len(plan.tasks):
        by_id = {task.id: task for task in plan.tasks}
        return [by_id[task_id] for task_id in ordered_ids], False

    cyclic = graph.cyclic_tasks()
    if cycle_policy == "reject":
        raise CycleDetected(cyclic)
    LOGGER.warning(
        f"Circular dependency detected among {', '.join(cyclic)}; "
        "falling back to declaration order"
    )
    return list(plan.tasks), True


class ExecutionEngine:
    """Runs a TaskPlan one task at a time in topological order.

    ``continue_on_error=False`` stops at the first failed task. With
    ``continue_on_error=True`` independent tasks keep running, while tasks
    whose prerequisites failed are marked ``blocked`` and never dispatched.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        continue_on_error: bool = False,
        task_timeout_ms: Optional[int] = 300_000,
        cycle_policy: str = "fallback",
    ) -> None:
        self.dispatcher = dispatcher
        self.continue_on_error = continue_on_error
        self.task_timeout_ms = task_timeout_ms
        self.cycle_policy = cycle_policy

    async def execute(self, plan: TaskPlan, cancel_token: Optional[CancellationSignal] = None) -> ExecutionResult:
        graph = DependencyGraph.from_plan(plan)
        ordered, cycle_detected = execution_order(plan, graph, self.cycle_policy)
        statuses: Dict[str, TaskStatus] = {task.id: "pending" for task in plan.tasks}
        results: List[TaskResult] = []
        cancelled = False

        LOGGER.info(f"Executing {len(ordered)} task(s): {' -> '.join(task.id for task in ordered)}")

        for task in ordered:
            if cancel_token is not None and cancel_token.is_cancelled():
                LOGGER.info(f"Cancellation requested; stopping before {task.id}")
                cancelled = True
                break

            unmet = [dep for dep in graph.predecessors(task.id) if statuses[dep] in ("failed", "blocked")]
            if unmet:
                statuses[task.id] = "blocked"
                LOGGER.info(f"Task {task.id} blocked by failed prerequisite(s): {', '.join(unmet)}")
                continue

            statuses[task.id] = "in_progress"
            result = await self._dispatch(task, cancel_token)
            results.append(result)
            statuses[task.id] = "completed" if result.success else "failed"
            log_task_result(LOGGER, task.id, result.success, result.duration_ms, result.error or "")

            if not result.success and not self.continue_on_error:
                LOGGER.warning(f"Task {task.id} failed; stopping (continue_on_error is off)")
                break

        execution = ExecutionResult.from_results(
            plan,
            results,
            statuses,
            cancelled=cancelled,
            cycle_detected=cycle_detected,
        )
        LOGGER.info(
            f"Execution finished: {execution.summary.completed_tasks}/{execution.summary.total_tasks} completed, "
            f"{execution.summary.failed_tasks} failed"
        )
        return execution

    async def _dispatch(self, task: Task, cancel_token: Optional[CancellationSignal]) -> TaskResult:
        """Run one task; every error becomes a failed TaskResult."""
        started = time.perf_counter()
        timeout_s = self.task_timeout_ms / 1000 if self.task_timeout_ms else None
        try:
            result = await asyncio.wait_for(self.dispatcher.dispatch(task, cancel_token), timeout_s)
        except asyncio.TimeoutError:
            return TaskResult(
                task_id=task.id,
                success=False,
                error=f"Task timed out after {self.task_timeout_ms} ms",
                duration_ms=_elapsed_ms(started),
            )
        except RunCancelled as e:
            return TaskResult(task_id=task.id, success=False, error=str(e), duration_ms=_elapsed_ms(started))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            LOGGER.exception(f"Task {task.id} raised during dispatch", exc_info=e)
            return TaskResult(
                task_id=task.id,
                success=False,
                error=f"{type(e).__name__}: {e}",
                duration_ms=_elapsed_ms(started),
            )

        return result.model_copy(update={"task_id": task.id, "duration_ms": _elapsed_ms(started)})


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


__all__ = ["Dispatcher", "ExecutionEngine", "execution_order"]
