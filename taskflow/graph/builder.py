"""Lifecycle controller: the thin, side-effecting shell around ``transition``.

    idle --START--> planning --PLAN_COMPLETE--> executing --> verifying
                      ^   |                        ^             |
                      |   +--(supervised)--> awaiting_approval   |
                      |                                          |
                      +------ fix plan (iteration < max) --------+
                                                                 |
                                          completed | failed <---+

The controller performs the effects each transition asks for, feeds the
resulting events back in, logs every transition and runs cleanup hooks
exactly once when a terminal state is reached.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Union

from taskflow.execution.cancellation import CancellationToken
from taskflow.execution.engine import ExecutionEngine
from taskflow.hitl.approval import Approver
from taskflow.plan.planner import Planner
from taskflow.plan.request import AgentRequest
from taskflow.utils.logging_utils import log_error, log_state_transition
from taskflow.verification.engine import VerificationEngine

from .nodes import build_approval_node, build_executor_node, build_planner_node, build_verify_node
from .routing import transition
from .state import AgentContext, AgentPolicy, AgentStatus, Cancelled, Effect, LifecycleEvent, Start

LOGGER = logging.getLogger(__name__)

CleanupHook = Callable[[AgentContext], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class AgentRun:
    """Final outcome of one lifecycle run."""

    session_id: str
    status: AgentStatus
    context: AgentContext
    started_at: datetime
    finished_at: datetime

    @property
    def succeeded(self) -> bool:
        return self.status is AgentStatus.COMPLETED


class AgentController:
    """Drives one request through planning, execution and verification."""

    def __init__(
        self,
        *,
        planner: Planner,
        engine: ExecutionEngine,
        verifier: VerificationEngine,
        policy: Optional[AgentPolicy] = None,
        approver: Optional[Approver] = None,
        cleanup_hooks: Optional[List[CleanupHook]] = None,
    ) -> None:
        self.policy = policy or AgentPolicy()
        self._cleanup_hooks: List[CleanupHook] = list(cleanup_hooks or [])
        self._nodes: Dict[Effect, Callable] = {
            Effect.PLAN: build_planner_node(planner),
            Effect.EXECUTE: build_executor_node(engine),
            Effect.VERIFY: build_verify_node(verifier),
            Effect.AWAIT_APPROVAL: build_approval_node(approver),
        }

    def add_cleanup_hook(self, hook: CleanupHook) -> None:
        self._cleanup_hooks.append(hook)

    async def run(self, request: AgentRequest, cancel_token: Optional[CancellationToken] = None) -> AgentRun:
        token = cancel_token or CancellationToken()
        session_id = f"agent-{int(time.time() * 1000)}"
        started_at = datetime.now(timezone.utc)
        LOGGER.info(f"Starting run {session_id}: {request.title}")

        status = AgentStatus.IDLE
        context = AgentContext(request=request, policy=self.policy)
        events: Deque[LifecycleEvent] = deque([Start()])
        cleaned_up = False

        while events:
            event = events.popleft()
            step = transition(status, event, context)
            log_state_transition(LOGGER, status.value, step.status.value, event.name, step.context.summary())
            status, context = step.status, step.context

            for effect in step.effects:
                if effect is Effect.CLEANUP:
                    if not cleaned_up:
                        cleaned_up = True
                        await self._cleanup(context)
                elif effect is Effect.REPORT:
                    self._report(context)
                elif token.is_cancelled():
                    events.append(Cancelled(token.reason or "Run cancelled"))
                else:
                    events.append(await self._nodes[effect](context, token))

        finished_at = datetime.now(timezone.utc)
        if status is AgentStatus.FAILED:
            LOGGER.error(f"Run {session_id} failed from {context.failed_from.value}: {context.error}")
        else:
            LOGGER.info(f"Run {session_id} {status.value} after {context.iteration} iteration(s)")
        return AgentRun(session_id, status, context, started_at, finished_at)

    def _report(self, context: AgentContext) -> None:
        if context.execution is not None:
            summary = context.execution.summary
            LOGGER.info(
                f"Execution: {summary.completed_tasks}/{summary.total_tasks} tasks completed, "
                f"{summary.failed_tasks} failed, {summary.total_duration_ms} ms"
            )
        if context.verification is not None:
            for check in context.verification.checks:
                LOGGER.info(f"  [{check.severity}] {check.name}: {check.message}")

    async def _cleanup(self, context: AgentContext) -> None:
        for hook in self._cleanup_hooks:
            try:
                outcome = hook(context)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                log_error(LOGGER, e, "cleanup hook")


__all__ = ["AgentController", "AgentRun", "CleanupHook"]
