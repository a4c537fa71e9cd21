"""Built-in tools available to the execution engine."""

from pathlib import Path
from typing import List, Union

from langchain_core.tools import BaseTool

from .file_ops import build_file_tools
from .project_analyze import build_project_tools


def build_builtin_tools(project_root: Union[str, Path]) -> List[BaseTool]:
    return [*build_file_tools(project_root), *build_project_tools(project_root)]


__all__ = ["build_builtin_tools", "build_file_tools", "build_project_tools"]
