"""Backend catalog: specs plus the gateway that reaches each backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .gateway import ModelGateway

DEFAULT_COST_PER_TOKEN = 0.001


@dataclass(frozen=True, slots=True)
class BackendSpec:
    """Normalized description of one remote model backend."""

    backend_id: str
    model_id: str
    cost_per_token: float = DEFAULT_COST_PER_TOKEN
    base_url: Optional[str] = None
    api_key_env: Optional[str] = None
    temperature: float = 0.2


class BackendRegistry:
    """Registered backends in registration order."""

    def __init__(self, entries: Optional[Iterable[Tuple[BackendSpec, ModelGateway]]] = None) -> None:
        self._specs: Dict[str, BackendSpec] = {}
        self._gateways: Dict[str, ModelGateway] = {}
        if entries:
            for spec, gateway in entries:
                self.register(spec, gateway)

    def register(self, spec: BackendSpec, gateway: ModelGateway) -> None:
        """Store a backend under its id, replacing any previous entry."""

        self._specs[spec.backend_id] = spec
        self._gateways[spec.backend_id] = gateway

    def spec(self, backend_id: str) -> BackendSpec:
        if backend_id not in self._specs:
            raise KeyError(f"Unknown backend: {backend_id}")
        return self._specs[backend_id]

    def gateway(self, backend_id: str) -> ModelGateway:
        if backend_id not in self._gateways:
            raise KeyError(f"Unknown backend: {backend_id}")
        return self._gateways[backend_id]

    def ids(self) -> List[str]:
        return list(self._specs)

    def __contains__(self, backend_id: object) -> bool:
        return backend_id in self._specs

    def __len__(self) -> int:
        return len(self._specs)


__all__ = ["BackendRegistry", "BackendSpec", "DEFAULT_COST_PER_TOKEN"]
