"""Planning phase node."""

from __future__ import annotations

import logging
from typing import Optional

from taskflow.execution.cancellation import CancellationSignal
from taskflow.plan.planner import Planner
from taskflow.plan.schema import TaskPlan
from taskflow.utils.error_handler import PlanningFailure, with_error_boundary

from ..state import AgentContext, LifecycleEvent, PlanCompleted, PlanFailed

LOGGER = logging.getLogger(__name__)


def build_planner_node(planner: Planner):
    """Create the planning node bound to ``planner``."""

    @with_error_boundary("planning", PlanFailed)
    async def planner_node(context: AgentContext, cancel_token: Optional[CancellationSignal] = None) -> LifecycleEvent:
        LOGGER.info(
            f"Planning pass {context.planning_passes}/{context.policy.max_iterations}"
            + (" (from fix tasks)" if context.fix_plan else "")
        )
        plan = await planner.plan(context.request, context.fix_plan, cancel_token)
        if not isinstance(plan, TaskPlan):
            raise PlanningFailure(f"Planner returned {type(plan).__name__}, expected TaskPlan")
        if not plan.tasks:
            raise PlanningFailure("Planner returned an empty plan", "The planner produced no tasks.")
        return PlanCompleted(plan)

    return planner_node
