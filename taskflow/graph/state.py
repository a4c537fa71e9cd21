"""Lifecycle state, events and the context threaded through one agent run."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from taskflow.plan.request import AgentRequest
from taskflow.plan.schema import ExecutionResult, TaskPlan, VerificationResult


class AgentStatus(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AgentStatus.COMPLETED, AgentStatus.FAILED)


class Effect(str, Enum):
    """Work the controller shell performs after a transition."""

    PLAN = "plan"
    EXECUTE = "execute"
    VERIFY = "verify"
    AWAIT_APPROVAL = "await_approval"
    REPORT = "report"
    CLEANUP = "cleanup"


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Start:
    name = "START"


@dataclass(frozen=True)
class PlanCompleted:
    plan: TaskPlan
    name = "PLAN_COMPLETE"


@dataclass(frozen=True)
class PlanFailed:
    error: BaseException
    name = "PLAN_FAILED"


@dataclass(frozen=True)
class ExecutionCompleted:
    result: ExecutionResult
    name = "EXECUTION_COMPLETE"


@dataclass(frozen=True)
class ExecutionFailed:
    error: BaseException
    name = "EXECUTION_FAILED"


@dataclass(frozen=True)
class VerificationCompleted:
    result: VerificationResult
    name = "VERIFICATION_COMPLETE"


@dataclass(frozen=True)
class VerificationErrored:
    error: BaseException
    name = "VERIFICATION_ERROR"


@dataclass(frozen=True)
class Approved:
    name = "APPROVED"


@dataclass(frozen=True)
class Rejected:
    reason: str = "Plan rejected by supervisor"
    name = "REJECTED"


@dataclass(frozen=True)
class Cancelled:
    reason: str = "Run cancelled"
    name = "CANCELLED"


LifecycleEvent = Union[
    Start,
    PlanCompleted,
    PlanFailed,
    ExecutionCompleted,
    ExecutionFailed,
    VerificationCompleted,
    VerificationErrored,
    Approved,
    Rejected,
    Cancelled,
]


# ----------------------------------------------------------------------
# Context
# ----------------------------------------------------------------------
class AgentPolicy(BaseModel):
    """Configuration the transition function consults."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: Literal["autonomous", "supervised"] = "autonomous"
    max_iterations: int = Field(default=3, ge=1)
    approval_required: FrozenSet[str] = frozenset()


class ActionRecord(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    action: Literal["plan", "execute", "verify", "fix", "approve", "reject", "cancel"]
    success: bool
    message: str = ""


class AgentContext(BaseModel):
    """Immutable snapshot; every transition returns a new one."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    request: AgentRequest
    policy: AgentPolicy = Field(default_factory=AgentPolicy)
    plan: Optional[TaskPlan] = None
    execution: Optional[ExecutionResult] = None
    verification: Optional[VerificationResult] = None
    fix_plan: Optional[TaskPlan] = None
    iteration: int = Field(default=0, ge=0)
    planning_passes: int = Field(default=0, ge=0)
    error: Optional[str] = None
    error_kind: Optional[str] = None
    failed_from: Optional[AgentStatus] = None
    history: Tuple[ActionRecord, ...] = ()

    def summary(self) -> dict:
        return {
            "iteration": self.iteration,
            "max_iterations": self.policy.max_iterations,
            "plan_tasks": len(self.plan.tasks) if self.plan else 0,
            "error": self.error,
        }


__all__ = [
    "ActionRecord",
    "AgentContext",
    "AgentPolicy",
    "AgentStatus",
    "Approved",
    "Cancelled",
    "Effect",
    "ExecutionCompleted",
    "ExecutionFailed",
    "LifecycleEvent",
    "PlanCompleted",
    "PlanFailed",
    "Rejected",
    "Start",
    "VerificationCompleted",
    "VerificationErrored",
]
