"""Verification engine: runs the check battery and synthesizes fix tasks."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Union

from taskflow.plan.schema import ExecutionResult, VerificationCheck, VerificationResult

from . import checks
from .fix_tasks import build_fix_tasks

LOGGER = logging.getLogger(__name__)


class VerificationEngine:
    """Inspects an ExecutionResult against the fixed, ordered check battery."""

    def __init__(
        self,
        project_path: Union[str, Path],
        *,
        quality_threshold: int = 80,
        coverage_pass: float = 70.0,
        coverage_warn: float = 50.0,
        require_coverage_report: bool = True,
        check_timeout_s: float = 60.0,
    ) -> None:
        self.project_path = Path(project_path).resolve()
        self.quality_threshold = quality_threshold
        self.coverage_pass = coverage_pass
        self.coverage_warn = coverage_warn
        self.require_coverage_report = require_coverage_report
        self.check_timeout_s = check_timeout_s

    async def _run_check(self, name: str, func: Callable[[], VerificationCheck]) -> VerificationCheck:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func), self.check_timeout_s)
        except asyncio.TimeoutError:
            LOGGER.warning(f"Check '{name}' timed out after {self.check_timeout_s}s")
            return VerificationCheck(
                name=name,
                passed=True,
                message=f"Could not verify {name.lower()}: timed out",
                severity="warning",
            )
        except Exception as e:
            LOGGER.warning(f"Check '{name}' could not run: {type(e).__name__}: {e}")
            return VerificationCheck(
                name=name,
                passed=True,
                message=f"Could not verify {name.lower()}",
                severity="warning",
            )

    async def verify(self, execution: ExecutionResult) -> VerificationResult:
        install_command = ""

        def dependencies() -> VerificationCheck:
            nonlocal install_command
            check, install_command = checks.check_dependencies(self.project_path)
            return check

        battery = [
            (checks.TASK_COMPLETION, lambda: checks.check_task_completion(execution)),
            (checks.GENERATED_FILES, lambda: checks.check_generated_files(execution)),
            (
                checks.CODE_QUALITY,
                lambda: checks.check_code_quality(execution, self.project_path, self.quality_threshold),
            ),
            (
                checks.TEST_COVERAGE,
                lambda: checks.check_test_coverage(
                    self.project_path,
                    self.coverage_pass,
                    self.coverage_warn,
                    self.require_coverage_report,
                ),
            ),
            (checks.DEPENDENCIES, dependencies),
            (checks.TYPE_SAFETY, lambda: checks.check_type_safety(self.project_path)),
        ]

        results: List[VerificationCheck] = []
        for name, func in battery:
            check = await self._run_check(name, func)
            level = logging.INFO if check.passed else logging.WARNING
            LOGGER.log(level, f"Check {name}: {'passed' if check.passed else 'FAILED'} - {check.message}")
            results.append(check)

        all_passed = all(check.passed for check in results)
        fix_tasks = () if all_passed else tuple(build_fix_tasks(results, install_command))
        if fix_tasks:
            LOGGER.info(f"Synthesized {len(fix_tasks)} fix task(s): {', '.join(t.title for t in fix_tasks)}")
        return VerificationResult(checks=tuple(results), all_passed=all_passed, fix_tasks=fix_tasks)


__all__ = ["VerificationEngine"]
