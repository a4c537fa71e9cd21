"""Verification of execution results."""

from .engine import VerificationEngine
from .fix_tasks import FIX_TASK_TABLE, build_fix_plan, build_fix_tasks

__all__ = ["FIX_TASK_TABLE", "VerificationEngine", "build_fix_plan", "build_fix_tasks"]
