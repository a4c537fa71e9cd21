"""Agent lifecycle: states, pure transitions and the controller shell."""

from .builder import AgentController, AgentRun
from .routing import Transition, transition
from .state import AgentContext, AgentPolicy, AgentStatus, Effect

__all__ = [
    "AgentContext",
    "AgentController",
    "AgentPolicy",
    "AgentRun",
    "AgentStatus",
    "Effect",
    "Transition",
    "transition",
]
