"""Runtime assembly: settings in, a ready AgentController out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from taskflow.config.backends_loader import BackendConfig
from taskflow.config.settings import Settings, get_settings
from taskflow.execution.engine import ExecutionEngine
from taskflow.execution.handlers import TaskDispatcher
from taskflow.execution.shell import CommandRunner
from taskflow.graph.builder import AgentController
from taskflow.graph.state import AgentPolicy
from taskflow.hitl.approval import Approver
from taskflow.models.metrics import MetricsStore
from taskflow.models.orchestrator import MultiModelOrchestrator
from taskflow.models.registry import BackendRegistry
from taskflow.plan.planner import LLMPlanner, Planner, StaticPlanner, default_plan
from taskflow.plan.request import AgentRequest
from taskflow.tools.builtin import build_builtin_tools
from taskflow.tools.registry import ToolRegistry
from taskflow.verification.engine import VerificationEngine

from .model_resolver import build_backend_registry

LOGGER = logging.getLogger(__name__)


@dataclass
class Application:
    controller: AgentController
    orchestrator: Optional[MultiModelOrchestrator]
    engine: ExecutionEngine
    verifier: VerificationEngine
    tools: ToolRegistry
    runner: CommandRunner


class _DefaultPlanner:
    """Used when no model backend is available."""

    async def plan(self, request: AgentRequest, fix_plan=None, cancel_token=None):
        if fix_plan is not None and fix_plan.tasks:
            return fix_plan
        return default_plan(request)


def build_orchestrator(
    settings: Settings,
    *,
    registry: Optional[BackendRegistry] = None,
    metrics: Optional[MetricsStore] = None,
) -> Optional[MultiModelOrchestrator]:
    """Orchestrator over the configured backends, or None when none is usable."""
    backend_config = BackendConfig(settings.orchestrator)
    if registry is None:
        registry = build_backend_registry(backend_config.specs(), backend_config.inline_api_keys())
    if len(registry) == 0:
        LOGGER.warning("No model backend has credentials; model-dependent work uses templates")
        return None

    primary = backend_config.primary
    if primary not in registry:
        fallback_primary = registry.ids()[0]
        LOGGER.warning(f"Primary backend '{primary}' unavailable, using '{fallback_primary}'")
        primary = fallback_primary

    return MultiModelOrchestrator(
        registry,
        metrics or MetricsStore(),
        primary=primary,
        fallbacks=backend_config.fallbacks,
        strategy=backend_config.strategy,
        multi_model_enabled=settings.orchestrator.multi_model_enabled,
        request_timeout_s=settings.orchestrator.request_timeout_s,
    )


def build_application(
    settings: Optional[Settings] = None,
    *,
    project_path: Optional[str] = None,
    planner: Optional[Planner] = None,
    plan_file: Optional[str] = None,
    approver: Optional[Approver] = None,
    orchestrator: Optional[MultiModelOrchestrator] = None,
) -> Application:
    """Wire every collaborator for one project.

    ``planner`` wins over ``plan_file``; without either the LLM planner is
    used, or the default plan when no backend is configured.
    """
    settings = settings or get_settings()
    agent = settings.agent
    root = Path(project_path or agent.project_path).resolve()
    root.mkdir(parents=True, exist_ok=True)

    if orchestrator is None:
        orchestrator = build_orchestrator(settings)

    tools = ToolRegistry(build_builtin_tools(root))
    runner = CommandRunner()
    dispatcher = TaskDispatcher(
        tools=tools,
        project_path=str(root),
        orchestrator=orchestrator,
        runner=runner,
        test_command=agent.test_command,
        command_timeout_s=agent.task_timeout_ms / 1000,
    )
    engine = ExecutionEngine(
        dispatcher,
        continue_on_error=agent.continue_on_error,
        task_timeout_ms=agent.task_timeout_ms,
        cycle_policy=agent.cycle_policy,
    )
    verification = settings.verification
    verifier = VerificationEngine(
        root,
        quality_threshold=verification.quality_threshold,
        coverage_pass=verification.coverage_pass,
        coverage_warn=verification.coverage_warn,
        require_coverage_report=verification.require_coverage_report,
        check_timeout_s=verification.check_timeout_s,
    )

    if planner is None:
        if plan_file:
            planner = StaticPlanner.from_file(plan_file)
        elif orchestrator is not None:
            planner = LLMPlanner(
                orchestrator,
                use_default_plan_on_error=agent.use_default_plan_on_error,
                prompt_log_length=settings.observability.log_prompt_max_length,
            )
        else:
            planner = _DefaultPlanner()

    policy = AgentPolicy(
        mode=agent.mode,
        max_iterations=agent.max_iterations,
        approval_required=frozenset(agent.approval_required),
    )
    controller = AgentController(
        planner=planner,
        engine=engine,
        verifier=verifier,
        policy=policy,
        approver=approver,
        cleanup_hooks=[lambda context: runner.aclose()],
    )

    LOGGER.info(
        f"Application ready: project={root}, mode={agent.mode}, "
        f"max_iterations={agent.max_iterations}, backends={orchestrator.registry.ids() if orchestrator else []}"
    )
    return Application(
        controller=controller,
        orchestrator=orchestrator,
        engine=engine,
        verifier=verifier,
        tools=tools,
        runner=runner,
    )


__all__ = ["Application", "build_application", "build_orchestrator"]
