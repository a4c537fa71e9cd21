"""Pure lifecycle transition function.

``transition(status, event, context)`` has no side effects: it returns the
next status, the next context and the effects the controller shell must
perform. Unknown (status, event) pairs raise InvalidTransition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from taskflow.hitl.approval import actions_requiring_approval
from taskflow.utils.error_handler import (
    ApprovalRejected,
    InvalidTransition,
    RunCancelled,
    VerificationFailure,
    user_message_for,
)
from taskflow.verification.fix_tasks import build_fix_plan

from .state import (
    ActionRecord,
    AgentContext,
    AgentStatus,
    Approved,
    Cancelled,
    Effect,
    ExecutionCompleted,
    ExecutionFailed,
    LifecycleEvent,
    PlanCompleted,
    PlanFailed,
    Rejected,
    Start,
    VerificationCompleted,
    VerificationErrored,
)


@dataclass(frozen=True)
class Transition:
    status: AgentStatus
    context: AgentContext
    effects: Tuple[Effect, ...] = ()


def _record(context: AgentContext, action: str, success: bool, message: str = "") -> Tuple[ActionRecord, ...]:
    return context.history + (ActionRecord(action=action, success=success, message=message),)


def _fail(
    context: AgentContext,
    failed_from: AgentStatus,
    error: BaseException,
    action: str,
) -> Transition:
    message = user_message_for(error)
    next_context = context.model_copy(
        update={
            "error": message,
            "error_kind": type(error).__name__,
            "failed_from": failed_from,
            "history": _record(context, action, False, message),
        }
    )
    return Transition(AgentStatus.FAILED, next_context, (Effect.CLEANUP,))


def _enter_planning(context: AgentContext, **updates) -> Transition:
    next_context = context.model_copy(
        update={"planning_passes": context.planning_passes + 1, **updates}
    )
    return Transition(AgentStatus.PLANNING, next_context, (Effect.PLAN,))


def _after_plan(context: AgentContext, event: PlanCompleted) -> Transition:
    plan = event.plan
    next_context = context.model_copy(
        update={
            "plan": plan,
            "fix_plan": None,
            "history": _record(context, "plan", True, f"{len(plan.tasks)} tasks"),
        }
    )
    if context.policy.mode == "supervised":
        gated = actions_requiring_approval(plan, context.policy.approval_required)
        if gated:
            return Transition(AgentStatus.AWAITING_APPROVAL, next_context, (Effect.AWAIT_APPROVAL,))
    return Transition(AgentStatus.EXECUTING, next_context, (Effect.EXECUTE,))


def _after_verification(context: AgentContext, event: VerificationCompleted) -> Transition:
    verification = event.result
    iteration = context.iteration + 1
    failing = [check.name for check in verification.failing_checks()]
    verified_context = context.model_copy(
        update={
            "verification": verification,
            "iteration": iteration,
            "history": _record(
                context,
                "verify",
                verification.all_passed,
                "all checks passed" if verification.all_passed else f"failing: {', '.join(failing)}",
            ),
        }
    )

    if verification.all_passed:
        return Transition(AgentStatus.COMPLETED, verified_context, (Effect.REPORT, Effect.CLEANUP))

    if iteration < context.policy.max_iterations:
        fix_plan = (
            build_fix_plan(verification, verified_context.plan, verified_context.execution)
            if verification.fix_tasks
            else None
        )
        retry_context = verified_context.model_copy(
            update={
                "history": _record(
                    verified_context,
                    "fix",
                    True,
                    f"{len(verification.fix_tasks)} fix tasks for iteration {iteration + 1}",
                )
            }
        )
        return _enter_planning(retry_context, fix_plan=fix_plan)

    return _fail(
        verified_context,
        AgentStatus.VERIFYING,
        VerificationFailure(failing, iteration),
        "verify",
    )


def transition(status: AgentStatus, event: LifecycleEvent, context: AgentContext) -> Transition:
    """Compute the next lifecycle step."""
    if status.is_terminal:
        raise InvalidTransition(f"Run already {status.value}; cannot handle {event.name}")

    if isinstance(event, Cancelled):
        return _fail(context, status, RunCancelled(event.reason, event.reason), "cancel")

    if status is AgentStatus.IDLE and isinstance(event, Start):
        return _enter_planning(context)

    if status is AgentStatus.PLANNING:
        if isinstance(event, PlanCompleted):
            return _after_plan(context, event)
        if isinstance(event, PlanFailed):
            return _fail(context, status, event.error, "plan")

    if status is AgentStatus.AWAITING_APPROVAL:
        if isinstance(event, Approved):
            next_context = context.model_copy(update={"history": _record(context, "approve", True)})
            return Transition(AgentStatus.EXECUTING, next_context, (Effect.EXECUTE,))
        if isinstance(event, Rejected):
            return _fail(context, status, ApprovalRejected(event.reason), "reject")

    if status is AgentStatus.EXECUTING:
        if isinstance(event, ExecutionCompleted):
            summary = event.result.summary
            next_context = context.model_copy(
                update={
                    "execution": event.result,
                    "history": _record(
                        context,
                        "execute",
                        event.result.success,
                        f"{summary.completed_tasks}/{summary.total_tasks} completed, {summary.failed_tasks} failed",
                    ),
                }
            )
            return Transition(AgentStatus.VERIFYING, next_context, (Effect.VERIFY,))
        if isinstance(event, ExecutionFailed):
            return _fail(context, status, event.error, "execute")

    if status is AgentStatus.VERIFYING:
        if isinstance(event, VerificationCompleted):
            return _after_verification(context, event)
        if isinstance(event, VerificationErrored):
            return _fail(context, status, event.error, "verify")

    raise InvalidTransition(f"Event {event.name} is not valid in state {status.value}")


__all__ = ["Transition", "transition"]
