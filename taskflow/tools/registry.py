"""Tool registration and structured invocation."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from langchain_core.tools import BaseTool
from pydantic import BaseModel, ConfigDict

from taskflow.utils.logging_utils import log_tool_call

LOGGER = logging.getLogger(__name__)


class ToolResult(BaseModel):
    """Outcome of one tool invocation: ``data`` on success, ``error`` otherwise."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    data: Any = None
    error: Optional[str] = None


def parse_tool_output(raw: Any) -> ToolResult:
    """Normalise a tool's return value.

    Built-in tools answer with JSON ``{"ok": bool, "data"|"error": ...}``;
    anything else is treated as successful plain data.
    """
    if isinstance(raw, str):
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return ToolResult(success=True, data=raw)
    else:
        payload = raw

    if isinstance(payload, dict) and "ok" in payload:
        if payload["ok"]:
            return ToolResult(success=True, data=payload.get("data"))
        return ToolResult(success=False, error=str(payload.get("error") or "Tool reported failure"))
    return ToolResult(success=True, data=payload)


class ToolRegistry:
    """Tracks tool instances by name. The set of names is opaque to callers."""

    def __init__(self, tools: Optional[Iterable[BaseTool]] = None) -> None:
        self._tools: Dict[str, BaseTool] = {}
        if tools:
            for tool in tools:
                self.register_tool(tool)

    def register_tool(self, tool: BaseTool) -> None:
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> BaseTool:
        if name not in self._tools:
            raise KeyError(f"Unknown tool: {name}")
        return self._tools[name]

    def list_tools(self) -> List[BaseTool]:
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    async def invoke(self, name: str, payload: Dict[str, Any]) -> ToolResult:
        """Run tool ``name`` with structured input."""
        if name not in self._tools:
            return ToolResult(success=False, error=f"Unknown tool: {name}")

        log_tool_call(LOGGER, name, payload)
        try:
            raw = await self._tools[name].ainvoke(payload)
        except Exception as exc:
            LOGGER.warning(f"Tool {name} raised {type(exc).__name__}: {exc}")
            return ToolResult(success=False, error=f"{type(exc).__name__}: {exc}")

        result = parse_tool_output(raw)
        if not result.success:
            LOGGER.info(f"Tool {name} reported failure: {result.error}")
        return result


__all__ = ["ToolRegistry", "ToolResult", "parse_tool_output"]
