"""Per-backend live metrics shared by every orchestrator call.

The store is the only long-lived mutable state in TaskFlow. Every
read-modify-write happens under one lock; readers get copies.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from .registry import DEFAULT_COST_PER_TOKEN

INITIAL_RESPONSE_TIME_MS = 1000.0
LATENCY_DECAY = 0.8
SUCCESS_STEP = 0.01
FAILURE_STEP = 0.05


@dataclass(frozen=True)
class BackendMetrics:
    backend_id: str
    response_time_ms: float = INITIAL_RESPONSE_TIME_MS
    success_rate: float = 1.0
    cost_per_token: float = DEFAULT_COST_PER_TOKEN
    error_count: int = 0
    last_used: Optional[datetime] = None
    available: bool = True

    @property
    def performance_score(self) -> float:
        return self.success_rate * (1000.0 / (self.response_time_ms + 1.0))


class MetricsStore:
    """Lock-guarded map of backend id to BackendMetrics."""

    def __init__(self, costs: Optional[Dict[str, float]] = None) -> None:
        self._lock = threading.Lock()
        self._costs: Dict[str, float] = dict(costs or {})
        self._metrics: Dict[str, BackendMetrics] = {}

    def _fresh(self, backend_id: str) -> BackendMetrics:
        return BackendMetrics(
            backend_id=backend_id,
            cost_per_token=self._costs.get(backend_id, DEFAULT_COST_PER_TOKEN),
        )

    def ensure(self, backend_ids: Iterable[str], costs: Optional[Dict[str, float]] = None) -> None:
        with self._lock:
            if costs:
                self._costs.update(costs)
            for backend_id in backend_ids:
                if backend_id not in self._metrics:
                    self._metrics[backend_id] = self._fresh(backend_id)

    def get(self, backend_id: str) -> BackendMetrics:
        with self._lock:
            return self._metrics.get(backend_id) or self._fresh(backend_id)

    def snapshot(self) -> Dict[str, BackendMetrics]:
        with self._lock:
            return dict(self._metrics)

    def record(self, backend_id: str, *, success: bool, latency_ms: float) -> BackendMetrics:
        """Fold one attempt into the backend's metrics and return the new value."""
        with self._lock:
            current = self._metrics.get(backend_id) or self._fresh(backend_id)
            response_time = current.response_time_ms * LATENCY_DECAY + latency_ms * (1 - LATENCY_DECAY)
            if success:
                updated = replace(
                    current,
                    response_time_ms=response_time,
                    success_rate=min(1.0, current.success_rate + SUCCESS_STEP),
                    last_used=datetime.now(timezone.utc),
                )
            else:
                updated = replace(
                    current,
                    response_time_ms=response_time,
                    success_rate=max(0.0, current.success_rate - FAILURE_STEP),
                    error_count=current.error_count + 1,
                    last_used=datetime.now(timezone.utc),
                )
            self._metrics[backend_id] = updated
            return updated

    def set_available(self, backend_id: str, available: bool) -> None:
        with self._lock:
            current = self._metrics.get(backend_id) or self._fresh(backend_id)
            self._metrics[backend_id] = replace(current, available=available)

    def reset(self) -> None:
        with self._lock:
            for backend_id in list(self._metrics):
                self._metrics[backend_id] = self._fresh(backend_id)


__all__ = ["BackendMetrics", "MetricsStore"]
