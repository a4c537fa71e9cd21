"""Plan data model, dependency graph and planners."""

from .graph import DependencyGraph
from .request import AgentRequest, Requirement
from .schema import (
    Dependency,
    ExecutionResult,
    ExecutionSummary,
    Task,
    TaskPlan,
    TaskResult,
    VerificationCheck,
    VerificationResult,
)

__all__ = [
    "AgentRequest",
    "Dependency",
    "DependencyGraph",
    "ExecutionResult",
    "ExecutionSummary",
    "Requirement",
    "Task",
    "TaskPlan",
    "TaskResult",
    "VerificationCheck",
    "VerificationResult",
]
