"""Verification phase node."""

from __future__ import annotations

from typing import Optional

from taskflow.execution.cancellation import CancellationSignal
from taskflow.utils.error_handler import with_error_boundary
from taskflow.verification.engine import VerificationEngine

from ..state import AgentContext, LifecycleEvent, VerificationCompleted, VerificationErrored


def build_verify_node(verifier: VerificationEngine):
    @with_error_boundary("verifying", VerificationErrored)
    async def verify_node(context: AgentContext, cancel_token: Optional[CancellationSignal] = None) -> LifecycleEvent:
        result = await verifier.verify(context.execution)
        return VerificationCompleted(result)

    return verify_node
