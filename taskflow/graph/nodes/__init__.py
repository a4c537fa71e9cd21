"""Phase nodes: each turns the current context into the next lifecycle event."""

from .approval import build_approval_node
from .executor import build_executor_node
from .planner import build_planner_node
from .verify import build_verify_node

__all__ = ["build_approval_node", "build_executor_node", "build_planner_node", "build_verify_node"]
