"""Multi-model orchestration: complexity-aware backend selection with fallback.

Every attempt, successful or not, is folded into the injected MetricsStore.
Selection policies read those metrics without holding the lock across the
call, so a decision may be based on slightly stale numbers.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
from typing import Dict, List, Optional, Sequence, Tuple

from taskflow.execution.cancellation import CancellationSignal, run_cancellable
from taskflow.utils.error_handler import ModelUnavailable, RunCancelled
from taskflow.utils.logging_utils import log_backend_selection

from .complexity import ComplexityLevel, assess_complexity
from .gateway import ChatRequest, ChatResponse, ChunkCallback, emit_chunk
from .metrics import BackendMetrics, MetricsStore
from .registry import BackendRegistry

LOGGER = logging.getLogger(__name__)

STRATEGIES = ("performance", "cost", "load_balanced")


class MultiModelOrchestrator:
    """Routes chat requests across registered backends."""

    def __init__(
        self,
        registry: BackendRegistry,
        metrics: MetricsStore,
        *,
        primary: str,
        fallbacks: Sequence[str] = (),
        strategy: str = "performance",
        multi_model_enabled: bool = True,
        request_timeout_s: Optional[float] = 120.0,
    ) -> None:
        if primary not in registry:
            raise ValueError(f"Primary backend '{primary}' is not registered")
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown selection strategy '{strategy}', expected one of {STRATEGIES}")

        self.registry = registry
        self.metrics = metrics
        self.primary = primary
        self.fallbacks: Tuple[str, ...] = tuple(fallbacks)
        self.strategy = strategy
        self.multi_model_enabled = multi_model_enabled
        self.request_timeout_s = request_timeout_s

        self._round_robin = itertools.count()
        self._rr_lock = threading.Lock()

        self._track_registered()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def _track_registered(self) -> None:
        """Start metrics for backends registered since the last call."""
        ids = self.registry.ids()
        costs = {backend_id: self.registry.spec(backend_id).cost_per_token for backend_id in ids}
        self.metrics.ensure(ids, costs=costs)

    def _candidates(self) -> List[str]:
        self._track_registered()
        snapshot = self.metrics.snapshot()
        ids = self.registry.ids()
        healthy = [backend_id for backend_id in ids if snapshot.get(backend_id, BackendMetrics(backend_id)).available]
        return healthy or ids

    def _next_round_robin(self, candidates: List[str]) -> str:
        with self._rr_lock:
            index = next(self._round_robin)
        return candidates[index % len(candidates)]

    def _cheapest(self, candidates: List[str]) -> str:
        return min(candidates, key=lambda backend_id: self.metrics.get(backend_id).cost_per_token)

    def _best_performing(self, candidates: List[str]) -> str:
        best_id = self.primary if self.primary in candidates else candidates[0]
        best_score = self.metrics.get(best_id).performance_score
        for backend_id in candidates:
            score = self.metrics.get(backend_id).performance_score
            if score > best_score:
                best_id, best_score = backend_id, score
        return best_id

    def select_backend(self, request: ChatRequest) -> Tuple[str, ComplexityLevel]:
        """Pick the backend for ``request`` according to the configured strategy."""
        complexity = assess_complexity(request)

        if not self.multi_model_enabled:
            return self.primary, complexity

        candidates = self._candidates()
        if self.strategy == "load_balanced" and complexity == "simple":
            selected = self._next_round_robin(candidates)
        elif self.strategy == "cost":
            selected = self._cheapest(candidates) if complexity == "simple" else self.primary
        else:
            selected = self._best_performing(candidates)

        log_backend_selection(LOGGER, selected, complexity, self.strategy)
        return selected, complexity

    def attempt_order(self, selected: str) -> List[str]:
        """Selected backend first, then each registered fallback once."""
        if not self.multi_model_enabled:
            return [self.primary]
        order = [selected]
        for backend_id in self.fallbacks:
            if backend_id in order:
                continue
            if backend_id not in self.registry:
                LOGGER.warning(f"Fallback backend '{backend_id}' is not registered, skipping")
                continue
            order.append(backend_id)
        return order

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def chat(
        self,
        request: ChatRequest,
        cancel_token: Optional[CancellationSignal] = None,
    ) -> ChatResponse:
        """Send ``request`` to the selected backend, walking the fallback chain on failure."""
        selected, _ = self.select_backend(request)
        attempts: List[str] = []
        last_error: Optional[BaseException] = None

        for backend_id in self.attempt_order(selected):
            if cancel_token is not None and cancel_token.is_cancelled():
                raise RunCancelled("Cancelled before model call", "The run was cancelled.")

            attempts.append(backend_id)
            gateway = self.registry.gateway(backend_id)
            started = time.perf_counter()
            try:
                response = await run_cancellable(gateway.chat(request), cancel_token, self.request_timeout_s)
            except (RunCancelled, asyncio.CancelledError):
                raise
            except Exception as exc:
                self.metrics.record(backend_id, success=False, latency_ms=_elapsed_ms(started))
                LOGGER.warning(f"Backend '{backend_id}' failed: {type(exc).__name__}: {exc}")
                last_error = exc
                continue

            self.metrics.record(backend_id, success=True, latency_ms=_elapsed_ms(started))
            if backend_id != selected:
                LOGGER.info(f"Fallback backend '{backend_id}' answered after {len(attempts) - 1} failure(s)")
            return response.model_copy(update={"backend": backend_id})

        raise ModelUnavailable(attempts, last_error)

    async def chat_stream(
        self,
        request: ChatRequest,
        on_chunk: ChunkCallback,
        cancel_token: Optional[CancellationSignal] = None,
    ) -> str:
        """Stream ``request`` and return the id of the backend that produced it.

        Falls back only while nothing has been emitted yet; a backend that
        fails mid-stream ends the call.
        """
        selected, _ = self.select_backend(request)
        attempts: List[str] = []
        last_error: Optional[BaseException] = None
        emitted = False

        async def forward(text: str) -> None:
            nonlocal emitted
            emitted = True
            await emit_chunk(on_chunk, text)

        for backend_id in self.attempt_order(selected):
            if cancel_token is not None and cancel_token.is_cancelled():
                raise RunCancelled("Cancelled before model call", "The run was cancelled.")

            attempts.append(backend_id)
            gateway = self.registry.gateway(backend_id)
            started = time.perf_counter()
            try:
                await run_cancellable(gateway.chat_stream(request, forward), cancel_token, self.request_timeout_s)
            except (RunCancelled, asyncio.CancelledError):
                raise
            except Exception as exc:
                self.metrics.record(backend_id, success=False, latency_ms=_elapsed_ms(started))
                LOGGER.warning(f"Backend '{backend_id}' stream failed: {type(exc).__name__}: {exc}")
                last_error = exc
                if emitted:
                    break
                continue

            self.metrics.record(backend_id, success=True, latency_ms=_elapsed_ms(started))
            return backend_id

        raise ModelUnavailable(attempts, last_error)

    # ------------------------------------------------------------------
    # Health and reporting
    # ------------------------------------------------------------------
    async def check_health(self) -> Dict[str, bool]:
        """Validate credentials on every backend and mark availability."""
        results: Dict[str, bool] = {}
        for backend_id in self.registry.ids():
            try:
                healthy = await asyncio.wait_for(
                    self.registry.gateway(backend_id).validate_credentials(),
                    self.request_timeout_s,
                )
            except asyncio.TimeoutError:
                LOGGER.warning(f"Backend '{backend_id}' health check timed out after {self.request_timeout_s}s")
                healthy = False
            except Exception as exc:
                LOGGER.warning(f"Backend '{backend_id}' health check raised {type(exc).__name__}: {exc}")
                healthy = False
            self.metrics.set_available(backend_id, healthy)
            results[backend_id] = healthy
            if not healthy:
                LOGGER.warning(f"Backend '{backend_id}' failed its health check")
        return results

    def performance_report(self) -> Dict[str, Dict[str, object]]:
        report: Dict[str, Dict[str, object]] = {}
        for backend_id, metrics in self.metrics.snapshot().items():
            report[backend_id] = {
                "response_time_ms": round(metrics.response_time_ms, 2),
                "success_rate": round(metrics.success_rate, 4),
                "cost_per_token": metrics.cost_per_token,
                "error_count": metrics.error_count,
                "available": metrics.available,
                "last_used": metrics.last_used.isoformat() if metrics.last_used else None,
                "score": round(metrics.performance_score, 4),
            }
        return report

    def reset_metrics(self) -> None:
        self.metrics.reset()
        LOGGER.info("Backend metrics reset")


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


__all__ = ["MultiModelOrchestrator", "STRATEGIES"]
