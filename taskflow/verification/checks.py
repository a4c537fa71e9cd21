"""The fixed battery of verification checks.

Every check is a blocking, side-effect-free function returning one
VerificationCheck; the engine runs them in worker threads.
"""

from __future__ import annotations

import ast
import json
import re
import tomllib
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from importlib import metadata
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from taskflow.plan.schema import ExecutionResult, VerificationCheck

TASK_COMPLETION = "Task Completion"
GENERATED_FILES = "Generated Files"
CODE_QUALITY = "Code Quality"
TEST_COVERAGE = "Test Coverage"
DEPENDENCIES = "Dependencies"
TYPE_SAFETY = "Type Safety"

CHECK_ORDER = (TASK_COMPLETION, GENERATED_FILES, CODE_QUALITY, TEST_COVERAGE, DEPENDENCIES, TYPE_SAFETY)

PYTHON_SUFFIXES = {".py"}
SCRIPT_SUFFIXES = {".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs"}
SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"}
MAX_SCANNED_FILES = 2000

CONFLICT_MARKER = re.compile(r"^(<{7}|>{7})( |$)")
PY_DEBUGGER = re.compile(r"\bbreakpoint\(\)|\bpdb\.set_trace\(\)")
JS_DEBUGGER = re.compile(r"^\s*debugger\s*;?\s*$")
JS_CONSOLE = re.compile(r"\bconsole\.log\(")
TODO_MARKER = re.compile(r"\b(TODO|FIXME)\b")
REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


# ----------------------------------------------------------------------
# Task Completion / Generated Files
# ----------------------------------------------------------------------
def check_task_completion(execution: ExecutionResult) -> VerificationCheck:
    failed = execution.failed_results()
    if not failed:
        return VerificationCheck(
            name=TASK_COMPLETION,
            passed=True,
            message=f"All {len(execution.results)} tasks completed successfully",
            severity="info",
        )
    ids = ", ".join(result.task_id for result in failed)
    return VerificationCheck(
        name=TASK_COMPLETION,
        passed=False,
        message=f"{len(failed)} tasks failed: {ids}",
        severity="error",
        details=tuple(result.task_id for result in failed),
    )


def check_generated_files(execution: ExecutionResult) -> VerificationCheck:
    artifacts = execution.artifacts()
    if not artifacts:
        return VerificationCheck(name=GENERATED_FILES, passed=True, message="No files to verify", severity="info")

    missing: List[str] = []
    empty: List[str] = []
    for artifact in artifacts:
        path = Path(artifact)
        if not path.exists():
            missing.append(artifact)
        elif path.is_file() and path.stat().st_size == 0:
            empty.append(artifact)

    if not missing and not empty:
        return VerificationCheck(
            name=GENERATED_FILES,
            passed=True,
            message=f"All {len(artifacts)} generated files exist",
            severity="info",
        )
    return VerificationCheck(
        name=GENERATED_FILES,
        passed=False,
        message=f"File issues: {len(missing)} missing, {len(empty)} empty",
        severity="error",
        details=tuple(missing + empty),
    )


# ----------------------------------------------------------------------
# Code Quality
# ----------------------------------------------------------------------
@dataclass
class QualityIssue:
    path: str
    line: int
    severity: str
    rule: str


@dataclass
class QualityReport:
    files: int = 0
    issues: List[QualityIssue] = field(default_factory=list)

    def count(self, severity: str) -> int:
        return sum(1 for issue in self.issues if issue.severity == severity)

    @property
    def score(self) -> int:
        return max(0, 100 - 10 * self.count("error") - 2 * self.count("warning"))


def _scan_lines(path: Path, text: str, report: QualityReport) -> None:
    suffix = path.suffix.lower()
    for number, line in enumerate(text.splitlines(), start=1):
        if CONFLICT_MARKER.match(line):
            report.issues.append(QualityIssue(str(path), number, "error", "merge-conflict-marker"))
        if suffix in PYTHON_SUFFIXES and PY_DEBUGGER.search(line):
            report.issues.append(QualityIssue(str(path), number, "error", "debugger-statement"))
        if suffix in SCRIPT_SUFFIXES:
            if JS_DEBUGGER.match(line):
                report.issues.append(QualityIssue(str(path), number, "error", "debugger-statement"))
            if JS_CONSOLE.search(line):
                report.issues.append(QualityIssue(str(path), number, "warning", "console-log"))
        if TODO_MARKER.search(line):
            report.issues.append(QualityIssue(str(path), number, "info", "todo"))


def scan_code_quality(paths: Iterable[Path]) -> QualityReport:
    report = QualityReport()
    for path in paths:
        text = path.read_text(encoding="utf-8", errors="replace")
        report.files += 1
        if path.suffix.lower() in PYTHON_SUFFIXES:
            try:
                ast.parse(text, filename=str(path))
            except SyntaxError as e:
                report.issues.append(QualityIssue(str(path), e.lineno or 0, "error", "syntax-error"))
        _scan_lines(path, text, report)
    return report


def source_files(execution: ExecutionResult, project_path: Path) -> List[Path]:
    """Source artifacts of this run plus everything under ``<project>/src``."""
    suffixes = PYTHON_SUFFIXES | SCRIPT_SUFFIXES
    found: List[Path] = []
    seen = set()

    def add(path: Path) -> None:
        resolved = path.resolve()
        if resolved not in seen and resolved.is_file() and resolved.suffix.lower() in suffixes:
            seen.add(resolved)
            found.append(resolved)

    for artifact in execution.artifacts():
        add(Path(artifact))

    src_dir = project_path / "src"
    if src_dir.is_dir():
        for path in sorted(src_dir.rglob("*")):
            if len(found) >= MAX_SCANNED_FILES:
                break
            if any(part in SKIP_DIRS for part in path.parts):
                continue
            add(path)
    return found


def check_code_quality(execution: ExecutionResult, project_path: Path, threshold: int = 80) -> VerificationCheck:
    files = source_files(execution, project_path)
    if not files:
        return VerificationCheck(name=CODE_QUALITY, passed=True, message="No source files to scan", severity="info")

    report = scan_code_quality(files)
    errors = report.count("error")
    warnings = report.count("warning")
    score = report.score

    if score >= threshold:
        return VerificationCheck(
            name=CODE_QUALITY,
            passed=True,
            message=f"Code quality score: {score}/100 across {report.files} files",
            severity="info",
        )
    if errors:
        return VerificationCheck(
            name=CODE_QUALITY,
            passed=False,
            message=f"Code quality score {score}/100 with {errors} critical issues",
            severity="error",
        )
    return VerificationCheck(
        name=CODE_QUALITY,
        passed=True,
        message=f"Code quality score {score}/100 with {warnings} warnings",
        severity="warning",
    )


# ----------------------------------------------------------------------
# Test Coverage
# ----------------------------------------------------------------------
def read_coverage(project_path: Path) -> Optional[float]:
    """Line coverage percentage from the first coverage report found."""
    istanbul = project_path / "coverage" / "coverage-summary.json"
    if istanbul.is_file():
        data = json.loads(istanbul.read_text(encoding="utf-8"))
        return float(data["total"]["lines"]["pct"])

    coverage_py = project_path / "coverage.json"
    if coverage_py.is_file():
        data = json.loads(coverage_py.read_text(encoding="utf-8"))
        return float(data["totals"]["percent_covered"])

    cobertura = project_path / "coverage.xml"
    if cobertura.is_file():
        root = ET.parse(cobertura).getroot()
        return float(root.attrib["line-rate"]) * 100

    return None


def check_test_coverage(
    project_path: Path,
    pass_threshold: float = 70.0,
    warn_threshold: float = 50.0,
    require_report: bool = True,
) -> VerificationCheck:
    coverage = read_coverage(project_path)
    if coverage is None:
        if not require_report:
            return VerificationCheck(
                name=TEST_COVERAGE,
                passed=True,
                message="No coverage report found",
                severity="warning",
            )
        coverage = 0.0

    if coverage >= pass_threshold:
        return VerificationCheck(
            name=TEST_COVERAGE, passed=True, message=f"Test coverage: {coverage:.1f}%", severity="info"
        )
    if coverage >= warn_threshold:
        return VerificationCheck(
            name=TEST_COVERAGE,
            passed=True,
            message=f"Test coverage {coverage:.1f}% is below {pass_threshold:g}%",
            severity="warning",
        )
    return VerificationCheck(
        name=TEST_COVERAGE,
        passed=False,
        message=f"Test coverage {coverage:.1f}% is below {warn_threshold:g}%",
        severity="error",
    )


# ----------------------------------------------------------------------
# Dependencies
# ----------------------------------------------------------------------
def _requirement_names(lines: Iterable[str]) -> List[str]:
    names: List[str] = []
    for line in lines:
        line = line.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        match = REQUIREMENT_NAME.match(line)
        if match:
            names.append(match.group(1))
    return names


def _missing_distributions(names: Iterable[str]) -> List[str]:
    missing = []
    for name in names:
        try:
            metadata.distribution(name)
        except metadata.PackageNotFoundError:
            missing.append(name)
    return missing


def find_missing_dependencies(project_path: Path) -> Tuple[Optional[int], List[str], str]:
    """Return (declared count or None without manifest, missing names, install command)."""
    package_json = project_path / "package.json"
    if package_json.is_file():
        manifest = json.loads(package_json.read_text(encoding="utf-8"))
        declared = list({**manifest.get("dependencies", {}), **manifest.get("devDependencies", {})})
        node_modules = project_path / "node_modules"
        missing = [name for name in declared if not (node_modules / name).exists()]
        return len(declared), missing, "npm install"

    requirements = project_path / "requirements.txt"
    if requirements.is_file():
        names = _requirement_names(requirements.read_text(encoding="utf-8").splitlines())
        return len(names), _missing_distributions(names), "pip install -r requirements.txt"

    pyproject = project_path / "pyproject.toml"
    if pyproject.is_file():
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        names = _requirement_names(data.get("project", {}).get("dependencies", []))
        return len(names), _missing_distributions(names), "pip install -e ."

    return None, [], ""


def check_dependencies(project_path: Path) -> Tuple[VerificationCheck, str]:
    declared, missing, install_command = find_missing_dependencies(project_path)
    if declared is None:
        check = VerificationCheck(name=DEPENDENCIES, passed=True, message="No dependency manifest found", severity="info")
    elif missing:
        shown = ", ".join(missing[:10]) + (" ..." if len(missing) > 10 else "")
        check = VerificationCheck(
            name=DEPENDENCIES,
            passed=False,
            message=f"Dependencies not installed: {shown}",
            severity="error",
        )
    else:
        check = VerificationCheck(
            name=DEPENDENCIES,
            passed=True,
            message=f"All {declared} dependencies installed",
            severity="info",
        )
    return check, install_command


# ----------------------------------------------------------------------
# Type Safety
# ----------------------------------------------------------------------
def _has_mypy_config(project_path: Path) -> bool:
    for name in ("mypy.ini", ".mypy.ini", "pyrightconfig.json"):
        if (project_path / name).is_file():
            return True
    setup_cfg = project_path / "setup.cfg"
    if setup_cfg.is_file() and "[mypy" in setup_cfg.read_text(encoding="utf-8"):
        return True
    pyproject = project_path / "pyproject.toml"
    if pyproject.is_file():
        text = pyproject.read_text(encoding="utf-8")
        return "[tool.mypy" in text or "[tool.pyright" in text
    return False


def check_type_safety(project_path: Path) -> VerificationCheck:
    if (project_path / "tsconfig.json").is_file():
        return VerificationCheck(name=TYPE_SAFETY, passed=True, message="TypeScript configuration found", severity="info")
    if _has_mypy_config(project_path):
        return VerificationCheck(name=TYPE_SAFETY, passed=True, message="Type checking configuration found", severity="info")
    return VerificationCheck(
        name=TYPE_SAFETY,
        passed=True,
        message="No type-checking configuration found",
        severity="warning",
    )
