"""Pytest configuration and shared fixtures.

Puts the project root on sys.path and provides in-memory fakes for the
model gateway and the task dispatcher so tests never touch the network.
"""

import asyncio
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from taskflow.models.gateway import ChatRequest, ChatResponse, emit_chunk  # noqa: E402
from taskflow.models.metrics import MetricsStore  # noqa: E402
from taskflow.models.orchestrator import MultiModelOrchestrator  # noqa: E402
from taskflow.models.registry import BackendRegistry, BackendSpec  # noqa: E402
from taskflow.plan.schema import Task, TaskResult  # noqa: E402


class FakeGateway:
    """Scriptable ModelGateway."""

    def __init__(
        self,
        backend_id: str,
        replies: Optional[List[str]] = None,
        *,
        error: Optional[Exception] = None,
        chunks: Optional[List[str]] = None,
        fail_after_chunks: Optional[int] = None,
        healthy: bool = True,
        delay: float = 0.0,
    ):
        self.backend_id = backend_id
        self.replies = list(replies or ["ok"])
        self.error = error
        self.chunks = list(chunks or ["hel", "lo"])
        self.fail_after_chunks = fail_after_chunks
        self.healthy = healthy
        self.delay = delay
        self.calls: List[ChatRequest] = []

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        return ChatResponse(content=reply, backend=self.backend_id, model=f"{self.backend_id}-model")

    async def chat_stream(self, request: ChatRequest, on_chunk) -> None:
        self.calls.append(request)
        for index, chunk in enumerate(self.chunks):
            if self.fail_after_chunks is not None and index >= self.fail_after_chunks:
                raise RuntimeError(f"{self.backend_id} stream broke")
            await emit_chunk(on_chunk, chunk)
        if self.error is not None and self.fail_after_chunks is None:
            raise self.error

    async def validate_credentials(self) -> bool:
        return self.healthy


class ScriptedDispatcher:
    """Dispatcher whose outcome per task id is scripted; records dispatch order."""

    def __init__(self, outcomes: Optional[Dict[str, object]] = None):
        self.outcomes = dict(outcomes or {})
        self.dispatched: List[str] = []
        self.on_dispatch: Optional[Callable[[Task], None]] = None

    async def dispatch(self, task: Task, cancel_token=None) -> TaskResult:
        self.dispatched.append(task.id)
        if self.on_dispatch is not None:
            self.on_dispatch(task)
        outcome = self.outcomes.get(task.id, True)
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome(task)
        if outcome:
            return TaskResult(task_id=task.id, success=True, output=f"{task.id} done")
        return TaskResult(task_id=task.id, success=False, error=f"{task.id} failed")


@pytest.fixture
def fake_gateway():
    """Factory for FakeGateway instances."""
    return FakeGateway


@pytest.fixture
def scripted_dispatcher():
    return ScriptedDispatcher


@pytest.fixture
def make_orchestrator():
    """Build an orchestrator over the given gateways (first one is primary)."""

    def factory(
        *gateways: FakeGateway,
        fallbacks: Optional[List[str]] = None,
        costs: Optional[Dict[str, float]] = None,
        **kwargs,
    ) -> MultiModelOrchestrator:
        registry = BackendRegistry()
        for gateway in gateways:
            cost = (costs or {}).get(gateway.backend_id, 0.001)
            registry.register(
                BackendSpec(backend_id=gateway.backend_id, model_id=f"{gateway.backend_id}-model", cost_per_token=cost),
                gateway,
            )
        kwargs.setdefault("primary", gateways[0].backend_id)
        return MultiModelOrchestrator(
            registry,
            MetricsStore(),
            fallbacks=fallbacks if fallbacks is not None else [g.backend_id for g in gateways[1:]],
            **kwargs,
        )

    return factory


def make_task(task_id: str, *deps: str, **kwargs) -> Task:
    kwargs.setdefault("title", f"Task {task_id}")
    return Task(id=task_id, dependencies=deps, **kwargs)


@pytest.fixture
def task_factory():
    return make_task
