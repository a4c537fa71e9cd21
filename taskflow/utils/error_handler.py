"""Unified error taxonomy and error boundaries for TaskFlow phases."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple

LOGGER = logging.getLogger(__name__)


class TaskFlowError(Exception):
    """Base exception for TaskFlow errors."""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class PlanningFailure(TaskFlowError):
    """Planning collaborator raised or produced an invalid plan."""


class TaskDispatchFailure(TaskFlowError):
    """A single task could not be dispatched. Recovered as a failed TaskResult."""

    def __init__(self, task_id: str, message: str, user_message: Optional[str] = None):
        super().__init__(message, user_message)
        self.task_id = task_id


class CycleDetected(TaskFlowError):
    """Plan dependencies contain a cycle."""

    def __init__(self, task_ids: Sequence[str]):
        ids = ", ".join(task_ids)
        super().__init__(
            f"Dependency cycle detected among tasks: {ids}",
            "The plan contains circular task dependencies.",
        )
        self.task_ids: Tuple[str, ...] = tuple(task_ids)


class VerificationFailure(TaskFlowError):
    """Verification kept failing after the retry budget was spent."""

    def __init__(self, failing_checks: Sequence[str], iterations: int):
        names = ", ".join(failing_checks) or "unknown"
        super().__init__(
            f"Verification failed after {iterations} iteration(s): {names}",
        )
        self.failing_checks: Tuple[str, ...] = tuple(failing_checks)
        self.iterations = iterations


class ModelUnavailable(TaskFlowError):
    """Every backend in the fallback chain failed."""

    def __init__(self, attempts: List[str], last_error: Optional[BaseException]):
        super().__init__(
            f"All models failed. Last error: {last_error}",
            handle_model_error(last_error) if last_error else "No model backend is available.",
        )
        self.attempts = list(attempts)
        self.last_error = last_error


class InvalidTransition(TaskFlowError):
    """Lifecycle event is not accepted in the current state."""


class ApprovalRejected(TaskFlowError):
    """Supervisor rejected the plan."""


class RunCancelled(TaskFlowError):
    """The run was cancelled through its cancellation token."""


def with_error_boundary(phase: str, on_error: Callable[[BaseException], Any]):
    """Decorator that turns a phase node's exceptions into its failure event.

    Args:
        phase: Phase name used for logging
        on_error: Factory building the failure value from the exception

    Example:
        @with_error_boundary("planning", PlanFailed)
        async def planner_node(context: AgentContext) -> LifecycleEvent:
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except TaskFlowError as e:
                LOGGER.error(f"{phase} failed: {e}")
                return on_error(e)
            except Exception as e:
                LOGGER.exception(f"{phase} unexpected error", exc_info=e)
                return on_error(e)

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except TaskFlowError as e:
                LOGGER.error(f"{phase} failed: {e}")
                return on_error(e)
            except Exception as e:
                LOGGER.exception(f"{phase} unexpected error", exc_info=e)
                return on_error(e)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def user_message_for(error: BaseException) -> str:
    """Human-readable reason for an error that ends a run."""
    if isinstance(error, TaskFlowError):
        return error.user_message
    return f"{type(error).__name__}: {error}"


def handle_model_error(error: BaseException) -> str:
    """Convert model invocation errors to user-friendly messages.

    Args:
        error: Exception raised during model invocation

    Returns:
        User-friendly error message
    """
    error_str = str(error).lower()

    if "rate_limit" in error_str or "429" in error_str:
        return "Model rate limit reached, try again later"

    if "timeout" in error_str or isinstance(error, asyncio.TimeoutError):
        return "Model response timed out"

    if "context_length" in error_str:
        return "Request is too long for the model context window"

    if "invalid_api_key" in error_str or "authentication" in error_str or "401" in error_str:
        return "Model API key is invalid"

    if "quota" in error_str or "insufficient" in error_str:
        return "Model quota exhausted"

    return f"Model service unavailable: {error}"
