"""Tests for the lifecycle controller driving planner, engine and verifier."""

from unittest.mock import AsyncMock

import pytest

from taskflow.execution.cancellation import CancellationToken
from taskflow.execution.engine import ExecutionEngine
from taskflow.execution.handlers import TaskDispatcher
from taskflow.graph.builder import AgentController
from taskflow.graph.state import AgentPolicy, AgentStatus
from taskflow.hitl.approval import auto_approver
from taskflow.plan.planner import StaticPlanner
from taskflow.plan.request import AgentRequest
from taskflow.plan.schema import Task, TaskPlan, VerificationCheck, VerificationResult
from taskflow.tools.builtin import build_builtin_tools
from taskflow.tools.registry import ToolRegistry
from taskflow.utils.error_handler import PlanningFailure
from taskflow.verification.engine import VerificationEngine

REQUEST = AgentRequest(title="Demo", description="demo request")
PLAN = TaskPlan.build([
    Task(id="T001", title="Setup", kind="shell", description="Run: true"),
    Task(id="T002", title="Build", dependencies=["T001"]),
])


class StubVerifier:
    """Fails the first ``failures`` verifications, then passes."""

    def __init__(self, failures=0):
        self.failures = failures
        self.calls = 0

    async def verify(self, execution):
        self.calls += 1
        if self.calls <= self.failures:
            check = VerificationCheck(name="Task Completion", passed=False, message="still broken", severity="error")
            fix = (Task(id="FIX001", title="Fix Failed Tasks"),)
            return VerificationResult(checks=(check,), all_passed=False, fix_tasks=fix)
        check = VerificationCheck(name="Task Completion", passed=True, message="ok")
        return VerificationResult(checks=(check,), all_passed=True)


class CountingPlanner:
    def __init__(self, plan=PLAN, error=None):
        self.plan_value = plan
        self.error = error
        self.fix_plans = []

    async def plan(self, request, fix_plan=None, cancel_token=None):
        self.fix_plans.append(fix_plan)
        if self.error is not None:
            raise self.error
        if fix_plan is not None and fix_plan.tasks:
            return fix_plan
        return self.plan_value


@pytest.fixture
def dispatcher(scripted_dispatcher):
    return scripted_dispatcher()


def _controller(dispatcher, *, planner=None, verifier=None, **kwargs):
    return AgentController(
        planner=planner or StaticPlanner(PLAN),
        engine=ExecutionEngine(dispatcher),
        verifier=verifier or StubVerifier(),
        **kwargs,
    )


class TestAgentController:
    @pytest.mark.asyncio
    async def test_completes_on_first_pass(self, dispatcher):
        run = await _controller(dispatcher).run(REQUEST)

        assert run.status is AgentStatus.COMPLETED
        assert run.succeeded
        assert run.context.iteration == 1
        assert run.context.execution.summary.completed_tasks == 2
        assert dispatcher.dispatched == ["T001", "T002"]
        assert run.session_id.startswith("agent-")

    @pytest.mark.asyncio
    async def test_retry_executes_fix_plan(self, dispatcher):
        planner = CountingPlanner()
        run = await _controller(dispatcher, planner=planner, verifier=StubVerifier(failures=1)).run(REQUEST)

        assert run.status is AgentStatus.COMPLETED
        assert run.context.iteration == 2
        assert planner.fix_plans[0] is None
        assert planner.fix_plans[1].task_ids() == ["FIX001"]
        assert dispatcher.dispatched == ["T001", "T002", "FIX001"]

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, dispatcher):
        """Should visit planning at most max_iterations times, then fail."""
        planner = CountingPlanner()
        verifier = StubVerifier(failures=100)
        policy = AgentPolicy(max_iterations=3)

        run = await _controller(dispatcher, planner=planner, verifier=verifier, policy=policy).run(REQUEST)

        assert run.status is AgentStatus.FAILED
        assert run.context.failed_from is AgentStatus.VERIFYING
        assert len(planner.fix_plans) == 3
        assert run.context.planning_passes == 3
        assert verifier.calls == 3
        assert run.context.iteration == 3

    @pytest.mark.asyncio
    async def test_planning_error_fails_run(self, dispatcher):
        planner = CountingPlanner(error=PlanningFailure("model gave up", "Could not produce a task plan."))
        run = await _controller(dispatcher, planner=planner).run(REQUEST)

        assert run.status is AgentStatus.FAILED
        assert run.context.failed_from is AgentStatus.PLANNING
        assert run.context.error == "Could not produce a task plan."
        assert dispatcher.dispatched == []

    @pytest.mark.asyncio
    async def test_empty_plan_fails_planning(self, dispatcher):
        run = await _controller(dispatcher, planner=CountingPlanner(plan=TaskPlan())).run(REQUEST)
        assert run.status is AgentStatus.FAILED
        assert run.context.failed_from is AgentStatus.PLANNING

    @pytest.mark.asyncio
    async def test_partial_task_failure_reaches_verification(self, scripted_dispatcher):
        dispatcher = scripted_dispatcher({"T001": False})
        verifier = StubVerifier(failures=100)
        run = await _controller(dispatcher, verifier=verifier, policy=AgentPolicy(max_iterations=1)).run(REQUEST)

        assert verifier.calls == 1
        assert run.context.execution.summary.failed_tasks == 1
        assert run.status is AgentStatus.FAILED
        assert run.context.failed_from is AgentStatus.VERIFYING

    @pytest.mark.asyncio
    async def test_cleanup_runs_once_on_success(self, dispatcher):
        calls = []

        async def async_hook(context):
            calls.append("async")

        controller = _controller(dispatcher, cleanup_hooks=[lambda context: calls.append("sync")])
        controller.add_cleanup_hook(async_hook)
        await controller.run(REQUEST)

        assert calls == ["sync", "async"]

    @pytest.mark.asyncio
    async def test_cleanup_hook_awaited_once_after_retries(self, dispatcher):
        hook = AsyncMock()
        controller = _controller(dispatcher, verifier=StubVerifier(failures=2), policy=AgentPolicy(max_iterations=3))
        controller.add_cleanup_hook(hook)

        run = await controller.run(REQUEST)

        assert run.status is AgentStatus.COMPLETED
        hook.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cleanup_runs_on_failure_and_survives_hook_errors(self, dispatcher):
        calls = []

        def broken_hook(context):
            raise RuntimeError("cleanup broke")

        planner = CountingPlanner(error=RuntimeError("boom"))
        controller = _controller(dispatcher, planner=planner, cleanup_hooks=[broken_hook, lambda c: calls.append(c.error)])
        run = await controller.run(REQUEST)

        assert run.status is AgentStatus.FAILED
        assert calls == ["RuntimeError: boom"]

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, dispatcher):
        token = CancellationToken()
        token.cancel("user abort")
        run = await _controller(dispatcher).run(REQUEST, token)

        assert run.status is AgentStatus.FAILED
        assert run.context.failed_from is AgentStatus.PLANNING
        assert run.context.error_kind == "RunCancelled"
        assert dispatcher.dispatched == []

    @pytest.mark.asyncio
    async def test_cancelled_during_execution(self, scripted_dispatcher):
        token = CancellationToken()
        dispatcher = scripted_dispatcher()
        dispatcher.on_dispatch = lambda task: token.cancel("stop")
        verifier = StubVerifier()

        run = await _controller(dispatcher, verifier=verifier).run(REQUEST, token)

        assert dispatcher.dispatched == ["T001"]
        assert run.status is AgentStatus.FAILED
        assert run.context.execution.cancelled
        assert verifier.calls == 0


class TestSupervisedMode:
    POLICY = AgentPolicy(mode="supervised", approval_required=frozenset({"shell"}))

    @pytest.mark.asyncio
    async def test_approved_plan_executes(self, dispatcher):
        run = await _controller(dispatcher, policy=self.POLICY, approver=auto_approver(True)).run(REQUEST)
        assert run.status is AgentStatus.COMPLETED
        assert [r.action for r in run.context.history][:2] == ["plan", "approve"]

    @pytest.mark.asyncio
    async def test_rejected_plan_never_executes(self, dispatcher):
        run = await _controller(dispatcher, policy=self.POLICY, approver=auto_approver(False)).run(REQUEST)
        assert run.status is AgentStatus.FAILED
        assert run.context.failed_from is AgentStatus.AWAITING_APPROVAL
        assert dispatcher.dispatched == []

    @pytest.mark.asyncio
    async def test_missing_approver_rejects(self, dispatcher):
        run = await _controller(dispatcher, policy=self.POLICY).run(REQUEST)
        assert run.status is AgentStatus.FAILED
        assert dispatcher.dispatched == []


class TestRetriesWithRealComponents:
    @pytest.fixture
    def project(self, tmp_path):
        root = tmp_path / "project"
        root.mkdir()
        return root

    @staticmethod
    def _real_controller(project, plan, max_iterations):
        dispatcher = TaskDispatcher(
            tools=ToolRegistry(build_builtin_tools(project)),
            project_path=str(project),
            test_command="true",
            command_timeout_s=10,
        )
        return AgentController(
            planner=StaticPlanner(plan),
            engine=ExecutionEngine(dispatcher),
            verifier=VerificationEngine(project, require_coverage_report=False),
            policy=AgentPolicy(max_iterations=max_iterations),
        )

    @pytest.mark.asyncio
    async def test_failing_command_is_rerun_and_run_fails(self, project):
        """Should re-dispatch the failed command on retry and never report completed."""
        plan = TaskPlan.build([Task(id="T1", title="Broken step", kind="shell", description="Run: exit 3")])

        run = await self._real_controller(project, plan, max_iterations=2).run(REQUEST)

        assert run.status is AgentStatus.FAILED
        assert run.context.failed_from is AgentStatus.VERIFYING
        retried = run.context.plan.tasks[0]
        assert retried.id == "FIX001"
        assert retried.kind == "shell"
        assert retried.description == "Run: exit 3"
        assert [r.task_id for r in run.context.execution.failed_results()] == ["FIX001"]

    @pytest.mark.asyncio
    async def test_retry_reruns_failed_and_blocked_tasks(self, project):
        """Should recover once the flaky command passes, running its blocked dependent too."""
        plan = TaskPlan.build([
            Task(
                id="T1",
                title="Flaky setup",
                kind="shell",
                description="Run: test -d .attempted || (mkdir .attempted && exit 1)",
            ),
            Task(
                id="T2",
                title="Notes",
                kind="file",
                description="# Notes\n",
                output_path="docs/notes.md",
                dependencies=["T1"],
            ),
        ])

        run = await self._real_controller(project, plan, max_iterations=2).run(REQUEST)

        assert run.status is AgentStatus.COMPLETED
        assert run.context.iteration == 2
        assert run.context.plan.task_ids() == ["FIX001", "FIX002"]
        assert run.context.plan.get("FIX002").dependencies == ("FIX001",)
        assert (project / "docs" / "notes.md").read_text() == "# Notes\n"
