"""Model backends, metrics and the multi-model orchestrator."""

from .complexity import ComplexityLevel, assess_complexity
from .gateway import ChatMessage, ChatRequest, ChatResponse, LangChainGateway, ModelGateway
from .metrics import BackendMetrics, MetricsStore
from .orchestrator import MultiModelOrchestrator
from .registry import BackendRegistry, BackendSpec

__all__ = [
    "BackendMetrics",
    "BackendRegistry",
    "BackendSpec",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ComplexityLevel",
    "LangChainGateway",
    "MetricsStore",
    "ModelGateway",
    "MultiModelOrchestrator",
    "assess_complexity",
]
