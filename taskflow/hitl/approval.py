"""Supervised-mode approval gate."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List

from taskflow.plan.schema import TaskPlan

LOGGER = logging.getLogger(__name__)

# Action names a task kind performs: the kind itself plus the tool it uses.
KIND_ACTIONS = {
    "code": ("code", "file_write"),
    "design": ("design", "file_write"),
    "file": ("file", "file_write"),
    "analysis": ("analysis", "project_analyze"),
    "shell": ("shell",),
    "test": ("test", "shell"),
}

Approver = Callable[[TaskPlan, List[str]], Awaitable[bool]]


def actions_requiring_approval(plan: TaskPlan, approval_required: Iterable[str]) -> List[str]:
    """Gated action names the plan would perform, in first-use order."""
    gated = set(approval_required)
    found: List[str] = []
    for task in plan.tasks:
        for action in KIND_ACTIONS.get(task.kind, (task.kind,)):
            if action in gated and action not in found:
                found.append(action)
    return found


def describe_plan(plan: TaskPlan, actions: List[str]) -> str:
    lines = [f"Plan with {len(plan.tasks)} task(s), estimate {plan.total_estimate:g}h"]
    for task in plan.tasks:
        deps = f" (after {', '.join(task.dependencies)})" if task.dependencies else ""
        lines.append(f"  [{task.kind}] {task.id} {task.title}{deps}")
    lines.append(f"Actions requiring approval: {', '.join(actions)}")
    return "\n".join(lines)


async def console_approver(plan: TaskPlan, actions: List[str]) -> bool:
    """Ask on stdin whether the plan may run."""
    print(describe_plan(plan, actions))
    answer = await asyncio.to_thread(input, "Approve execution? [y/N]: ")
    approved = answer.strip().lower() in {"y", "yes"}
    LOGGER.info(f"Supervisor {'approved' if approved else 'rejected'} plan")
    return approved


def auto_approver(decision: bool) -> Approver:
    """Approver that always answers ``decision``."""

    async def approve(plan: TaskPlan, actions: List[str]) -> bool:
        LOGGER.info(f"Auto-{'approving' if decision else 'rejecting'} gated actions: {', '.join(actions)}")
        return decision

    return approve


__all__ = ["Approver", "KIND_ACTIONS", "actions_requiring_approval", "auto_approver", "console_approver", "describe_plan"]
