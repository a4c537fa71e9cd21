"""File tools confined to one project root."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, List, Union

from langchain_core.tools import BaseTool, tool

LOGGER = logging.getLogger(__name__)

MAX_READ_CHARS = 200_000


def resolve_in_root(root: Path, path: str) -> Path:
    """Resolve ``path`` against ``root`` and refuse anything outside it."""
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()
    if not resolved.is_relative_to(root):
        raise PermissionError(f"Path escapes project root: {path}")
    return resolved


def _ok(data) -> str:
    return json.dumps({"ok": True, "data": data}, ensure_ascii=False)


def _fail(message: str) -> str:
    return json.dumps({"ok": False, "error": message}, ensure_ascii=False)


def build_file_tools(project_root: Union[str, Path]) -> List[BaseTool]:
    """Create ``file_write`` and ``file_read`` bound to ``project_root``."""
    root = Path(project_root).resolve()

    @tool
    def file_write(
        path: Annotated[str, "File path, relative to the project root or absolute inside it"],
        content: Annotated[str, "Full file content to write"],
    ) -> str:
        """Write a file inside the project, creating parent directories."""
        try:
            target = resolve_in_root(root, path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            LOGGER.warning(f"file_write failed for {path}: {e}")
            return _fail(str(e))

        LOGGER.info(f"Wrote file: {target} ({len(content)} chars)")
        return _ok({"path": str(target), "bytes": len(content.encode("utf-8"))})

    @tool
    def file_read(
        path: Annotated[str, "File path, relative to the project root or absolute inside it"],
    ) -> str:
        """Read a text file inside the project."""
        try:
            target = resolve_in_root(root, path)
            if not target.is_file():
                return _fail(f"File not found: {path}")
            content = target.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            return _fail(str(e))

        truncated = len(content) > MAX_READ_CHARS
        return _ok({
            "path": str(target),
            "content": content[:MAX_READ_CHARS],
            "truncated": truncated,
        })

    return [file_write, file_read]


__all__ = ["build_file_tools", "resolve_in_root"]
