"""Structural analysis of a project directory."""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from pathlib import Path
from typing import Annotated, Any, Dict, List, Union

from langchain_core.tools import BaseTool, tool

from .file_ops import resolve_in_root

LOGGER = logging.getLogger(__name__)

SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build", ".mypy_cache", ".pytest_cache"}
MANIFESTS = ("package.json", "pyproject.toml", "requirements.txt", "setup.cfg", "tsconfig.json", "Cargo.toml", "go.mod")
SOURCE_EXTENSIONS = {".py", ".js", ".jsx", ".ts", ".tsx", ".go", ".rs", ".java", ".rb", ".css", ".html"}
LANGUAGES = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".rb": "ruby",
}
MAX_FILES = 5000


def analyze_directory(root: Path) -> Dict[str, Any]:
    """Count files, source lines and manifests under ``root``."""
    extensions: Counter = Counter()
    source_lines = 0
    file_count = 0

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        for filename in filenames:
            file_count += 1
            if file_count > MAX_FILES:
                break
            suffix = Path(filename).suffix.lower()
            extensions[suffix or "<none>"] += 1
            if suffix in SOURCE_EXTENSIONS:
                try:
                    with open(Path(dirpath) / filename, "r", encoding="utf-8", errors="ignore") as handle:
                        source_lines += sum(1 for _ in handle)
                except OSError:
                    LOGGER.debug(f"Could not read {filename} during analysis")
        if file_count > MAX_FILES:
            break

    languages = Counter()
    for suffix, count in extensions.items():
        if suffix in LANGUAGES:
            languages[LANGUAGES[suffix]] += count

    top_level: List[str] = sorted(entry.name for entry in root.iterdir() if entry.name not in SKIP_DIRS)

    return {
        "root": str(root),
        "file_count": min(file_count, MAX_FILES),
        "truncated": file_count > MAX_FILES,
        "source_lines": source_lines,
        "extensions": dict(extensions.most_common()),
        "languages": [name for name, _ in languages.most_common()],
        "manifests": [name for name in MANIFESTS if (root / name).exists()],
        "frameworks": _detect_frameworks(root),
        "top_level": top_level,
    }


def _detect_frameworks(root: Path) -> List[str]:
    frameworks: List[str] = []
    package_json = root / "package.json"
    if package_json.is_file():
        try:
            manifest = json.loads(package_json.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            manifest = {}
        declared = {**manifest.get("dependencies", {}), **manifest.get("devDependencies", {})}
        for name in ("next", "react", "vue", "express", "vite", "jest", "vitest"):
            if name in declared:
                frameworks.append(name)

    for manifest_name in ("pyproject.toml", "requirements.txt"):
        manifest_path = root / manifest_name
        if not manifest_path.is_file():
            continue
        try:
            text = manifest_path.read_text(encoding="utf-8").lower()
        except OSError:
            continue
        for name in ("django", "fastapi", "flask", "pydantic", "pytest", "langchain"):
            if name in text and name not in frameworks:
                frameworks.append(name)
    return frameworks


def build_project_tools(project_root: Union[str, Path]) -> List[BaseTool]:
    """Create ``project_analyze`` bound to ``project_root``."""
    root = Path(project_root).resolve()

    @tool
    def project_analyze(
        path: Annotated[str, "Directory to analyze, relative to the project root or absolute inside it"] = ".",
    ) -> str:
        """Summarise a project's structure: files, languages, manifests and frameworks."""
        try:
            target = resolve_in_root(root, path)
            if not target.is_dir():
                return json.dumps({"ok": False, "error": f"Not a directory: {path}"})
            data = analyze_directory(target)
        except OSError as e:
            return json.dumps({"ok": False, "error": str(e)})
        return json.dumps({"ok": True, "data": data}, ensure_ascii=False)

    return [project_analyze]


__all__ = ["analyze_directory", "build_project_tools"]
