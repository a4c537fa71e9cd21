"""Execution phase node."""

from __future__ import annotations

from typing import Optional

from taskflow.execution.cancellation import CancellationSignal
from taskflow.execution.engine import ExecutionEngine
from taskflow.utils.error_handler import with_error_boundary

from ..state import AgentContext, ExecutionCompleted, ExecutionFailed, LifecycleEvent


def build_executor_node(engine: ExecutionEngine):
    @with_error_boundary("executing", ExecutionFailed)
    async def executor_node(context: AgentContext, cancel_token: Optional[CancellationSignal] = None) -> LifecycleEvent:
        # Partial task failures are a normal ExecutionResult, not an error.
        result = await engine.execute(context.plan, cancel_token)
        return ExecutionCompleted(result)

    return executor_node
