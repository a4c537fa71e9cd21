"""Tool invocation layer."""

from .registry import ToolRegistry, ToolResult

__all__ = ["ToolRegistry", "ToolResult"]
