"""Approval gate node for supervised runs."""

from __future__ import annotations

import logging
from typing import Optional

from taskflow.execution.cancellation import CancellationSignal
from taskflow.hitl.approval import Approver, actions_requiring_approval
from taskflow.utils.error_handler import with_error_boundary

from ..state import AgentContext, Approved, LifecycleEvent, Rejected

LOGGER = logging.getLogger(__name__)


def build_approval_node(approver: Optional[Approver]):
    @with_error_boundary("awaiting_approval", lambda e: Rejected(f"Approval failed: {e}"))
    async def approval_node(context: AgentContext, cancel_token: Optional[CancellationSignal] = None) -> LifecycleEvent:
        actions = actions_requiring_approval(context.plan, context.policy.approval_required)
        if approver is None:
            LOGGER.warning("Supervised run has no approver configured")
            return Rejected("No approver configured for supervised mode")
        if await approver(context.plan, actions):
            return Approved()
        return Rejected(f"Supervisor rejected actions: {', '.join(actions)}")

    return approval_node
