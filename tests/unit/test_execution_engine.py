"""Tests for dependency-ordered sequential execution."""

import asyncio

import pytest

from taskflow.execution.cancellation import CancellationToken
from taskflow.execution.engine import ExecutionEngine, execution_order
from taskflow.plan.schema import Task, TaskPlan, TaskResult
from taskflow.utils.error_handler import CycleDetected, RunCancelled


def _diamond_plan():
    return TaskPlan.build([
        Task(id="A", title="a"),
        Task(id="B", title="b", dependencies=["A"]),
        Task(id="C", title="c", dependencies=["A"]),
    ])


class TestExecutionOrder:
    def test_orders_by_dependencies(self):
        plan = TaskPlan.build([Task(id="B", title="b", dependencies=["A"]), Task(id="A", title="a")])
        tasks, cycle = execution_order(plan)
        assert [t.id for t in tasks] == ["A", "B"]
        assert cycle is False

    def test_cycle_falls_back_to_declaration_order(self):
        plan = TaskPlan.build([
            Task(id="A", title="a", dependencies=["B"]),
            Task(id="B", title="b", dependencies=["A"]),
        ])
        tasks, cycle = execution_order(plan)
        assert [t.id for t in tasks] == ["A", "B"]
        assert cycle is True

    def test_cycle_rejected_by_policy(self):
        plan = TaskPlan.build([
            Task(id="A", title="a", dependencies=["B"]),
            Task(id="B", title="b", dependencies=["A"]),
        ])
        with pytest.raises(CycleDetected) as exc_info:
            execution_order(plan, cycle_policy="reject")
        assert exc_info.value.task_ids == ("A", "B")


class TestExecutionEngine:
    @pytest.mark.asyncio
    async def test_all_tasks_succeed(self, scripted_dispatcher):
        dispatcher = scripted_dispatcher()
        result = await ExecutionEngine(dispatcher).execute(_diamond_plan())

        assert dispatcher.dispatched == ["A", "B", "C"]
        assert result.success is True
        assert result.summary.completed_tasks == 3
        assert result.statuses == {"A": "completed", "B": "completed", "C": "completed"}

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self, scripted_dispatcher):
        """Should halt after B fails, leaving C undispatched."""
        dispatcher = scripted_dispatcher({"B": False})
        result = await ExecutionEngine(dispatcher, continue_on_error=False).execute(_diamond_plan())

        assert dispatcher.dispatched == ["A", "B"]
        assert [r.task_id for r in result.results] == ["A", "B"]
        assert result.success is False
        assert result.summary.total_tasks == 3
        assert result.summary.completed_tasks == 1
        assert result.summary.failed_tasks == 1
        assert result.statuses["C"] == "pending"

    @pytest.mark.asyncio
    async def test_continue_on_error_runs_independent_tasks(self, scripted_dispatcher):
        dispatcher = scripted_dispatcher({"B": False})
        result = await ExecutionEngine(dispatcher, continue_on_error=True).execute(_diamond_plan())

        assert dispatcher.dispatched == ["A", "B", "C"]
        assert result.summary.completed_tasks == 2
        assert result.summary.failed_tasks == 1

    @pytest.mark.asyncio
    async def test_dependents_of_failed_task_are_blocked(self, scripted_dispatcher):
        """Should never dispatch a task whose prerequisite failed."""
        plan = TaskPlan.build([
            Task(id="A", title="a"),
            Task(id="B", title="b", dependencies=["A"]),
            Task(id="C", title="c", dependencies=["B"]),
            Task(id="D", title="d"),
        ])
        dispatcher = scripted_dispatcher({"A": False})
        result = await ExecutionEngine(dispatcher, continue_on_error=True).execute(plan)

        assert dispatcher.dispatched == ["A", "D"]
        assert result.statuses == {"A": "failed", "B": "blocked", "C": "blocked", "D": "completed"}

    @pytest.mark.asyncio
    async def test_dispatch_exception_becomes_failed_result(self, scripted_dispatcher):
        async def explode(task):
            await asyncio.sleep(0.05)
            raise RuntimeError("kaboom")

        dispatcher = scripted_dispatcher({"A": explode})
        result = await ExecutionEngine(dispatcher).execute(TaskPlan.build([Task(id="A", title="a")]))

        assert len(result.results) == 1
        failed = result.results[0]
        assert failed.success is False
        assert "kaboom" in failed.error
        assert failed.duration_ms >= 40

    @pytest.mark.asyncio
    async def test_task_timeout(self, scripted_dispatcher):
        async def slow(task):
            await asyncio.sleep(5)
            return TaskResult(task_id=task.id, success=True)

        dispatcher = scripted_dispatcher({"A": slow})
        engine = ExecutionEngine(dispatcher, task_timeout_ms=50)
        result = await engine.execute(TaskPlan.build([Task(id="A", title="a"), Task(id="B", title="b")]))

        assert result.results[0].success is False
        assert result.results[0].error == "Task timed out after 50 ms"
        assert dispatcher.dispatched == ["A"]

    @pytest.mark.asyncio
    async def test_measured_duration_replaces_reported(self, scripted_dispatcher):
        async def reports_bogus_duration(task):
            return TaskResult(task_id="wrong", success=True, duration_ms=999_999)

        dispatcher = scripted_dispatcher({"A": reports_bogus_duration})
        result = await ExecutionEngine(dispatcher).execute(TaskPlan.build([Task(id="A", title="a")]))

        assert result.results[0].task_id == "A"
        assert result.results[0].duration_ms < 999_999

    @pytest.mark.asyncio
    async def test_cancellation_stops_before_next_task(self, scripted_dispatcher):
        """Should not dispatch any task once the token is cancelled."""
        token = CancellationToken()
        dispatcher = scripted_dispatcher()
        dispatcher.on_dispatch = lambda task: token.cancel("stop") if task.id == "A" else None

        result = await ExecutionEngine(dispatcher).execute(_diamond_plan(), token)

        assert dispatcher.dispatched == ["A"]
        assert result.cancelled is True
        assert result.summary.completed_tasks == 1

    @pytest.mark.asyncio
    async def test_run_cancelled_during_task(self, scripted_dispatcher):
        dispatcher = scripted_dispatcher({"A": RunCancelled("cancelled mid-task")})
        result = await ExecutionEngine(dispatcher).execute(TaskPlan.build([Task(id="A", title="a")]))
        assert result.results[0].success is False
        assert "cancelled mid-task" in result.results[0].error

    @pytest.mark.asyncio
    async def test_cycle_flagged_in_result(self, scripted_dispatcher):
        plan = TaskPlan.build([
            Task(id="A", title="a", dependencies=["B"]),
            Task(id="B", title="b", dependencies=["A"]),
        ])
        dispatcher = scripted_dispatcher()
        result = await ExecutionEngine(dispatcher).execute(plan)
        assert result.cycle_detected is True
        assert dispatcher.dispatched == ["A", "B"]
