"""Utility functions for TaskFlow."""

from .error_handler import (
    ApprovalRejected,
    CycleDetected,
    InvalidTransition,
    ModelUnavailable,
    PlanningFailure,
    RunCancelled,
    TaskDispatchFailure,
    TaskFlowError,
    VerificationFailure,
    handle_model_error,
    with_error_boundary,
)
from .logging_utils import setup_logging

__all__ = [
    "ApprovalRejected",
    "CycleDetected",
    "InvalidTransition",
    "ModelUnavailable",
    "PlanningFailure",
    "RunCancelled",
    "TaskDispatchFailure",
    "TaskFlowError",
    "VerificationFailure",
    "handle_model_error",
    "setup_logging",
    "with_error_boundary",
]
