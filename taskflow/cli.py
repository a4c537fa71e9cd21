"""TaskFlow command line interface.

Usage:
    # Plan, execute and verify a request document
    python main.py run --request request.yaml --project ./workspace

    # Quick request without a document
    python main.py run --title "Todo API" --description "CRUD endpoints for todos"

    # Execute a hand-written plan instead of asking a model
    python main.py run --title "Scaffold" --plan plan.yaml --mode supervised

    # Check backend health and print metrics
    python main.py models
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from taskflow.config.settings import get_settings
from taskflow.execution.cancellation import CancellationToken
from taskflow.graph.builder import AgentRun
from taskflow.hitl.approval import auto_approver, console_approver
from taskflow.plan.request import AgentRequest
from taskflow.runtime.app import build_application, build_orchestrator
from taskflow.utils.logging_utils import setup_logging

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="taskflow",
        description="TaskFlow - plan, execute and verify multi-step engineering work",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run one request through the agent lifecycle")
    run.add_argument("--request", type=str, help="Request document (YAML or JSON)")
    run.add_argument("--title", type=str, help="Request title (when no document is given)")
    run.add_argument("--description", type=str, default="", help="Request description")
    run.add_argument("--project", type=str, help="Project directory (default: PROJECT_PATH)")
    run.add_argument("--plan", type=str, help="Execute this plan file instead of model planning")
    run.add_argument("--mode", choices=["autonomous", "supervised"], help="Agent mode")
    run.add_argument("--max-iterations", type=int, help="Planning passes allowed")
    run.add_argument("--continue-on-error", action="store_true", default=None, help="Keep running independent tasks after a failure")
    run.add_argument("--yes", action="store_true", help="Approve gated actions without prompting")
    run.add_argument("--json", action="store_true", help="Print the final context as JSON")

    subparsers.add_parser("models", help="Check backend health and show metrics")
    return parser.parse_args(argv)


def _load_request(args: argparse.Namespace) -> AgentRequest:
    if args.request:
        request = AgentRequest.from_file(args.request)
    elif args.title:
        request = AgentRequest(title=args.title, description=args.description)
    else:
        raise SystemExit("run: either --request or --title is required")
    if args.project:
        request = request.model_copy(update={"project_path": args.project})
    return request


def _apply_overrides(args: argparse.Namespace):
    settings = get_settings().model_copy(deep=True)
    agent_updates = {}
    if args.mode:
        agent_updates["mode"] = args.mode
    if args.max_iterations is not None:
        if args.max_iterations < 1:
            raise SystemExit("--max-iterations must be at least 1")
        agent_updates["max_iterations"] = args.max_iterations
    if args.continue_on_error is not None:
        agent_updates["continue_on_error"] = args.continue_on_error
    if agent_updates:
        settings.agent = settings.agent.model_copy(update=agent_updates)
    return settings


def _print_run(run: AgentRun, as_json: bool) -> None:
    context = run.context
    if as_json:
        print(context.model_dump_json(indent=2))
        return

    print(f"\nRun {run.session_id}: {run.status.value}")
    if context.plan:
        print(f"Plan: {len(context.plan.tasks)} tasks, critical path {' -> '.join(context.plan.critical_path)}")
    if context.execution:
        summary = context.execution.summary
        print(
            f"Execution: {summary.completed_tasks}/{summary.total_tasks} completed, "
            f"{summary.failed_tasks} failed ({summary.total_duration_ms} ms)"
        )
    if context.verification:
        for check in context.verification.checks:
            mark = "✓" if check.passed else "✗"
            print(f"  {mark} {check.name}: {check.message}")
    if context.error:
        print(f"Failed during {context.failed_from.value if context.failed_from else 'unknown'}: {context.error}")


async def _run(args: argparse.Namespace) -> int:
    settings = _apply_overrides(args)
    request = _load_request(args)
    approver = auto_approver(True) if args.yes else console_approver
    app = build_application(
        settings,
        project_path=args.project or (request.project_path if args.request else None),
        plan_file=args.plan,
        approver=approver,
    )

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "Interrupted by user")
    except (NotImplementedError, RuntimeError):
        LOGGER.debug("Signal handlers unavailable; Ctrl+C will abort immediately")

    run = await app.controller.run(request, token)
    _print_run(run, args.json)
    return 0 if run.succeeded else 1


async def _models() -> int:
    orchestrator = build_orchestrator(get_settings())
    if orchestrator is None:
        print("No model backend configured (set MODEL_API_KEY or provide backends.yaml)")
        return 1
    health = await orchestrator.check_health()
    for backend_id, healthy in health.items():
        print(f"{backend_id}: {'healthy' if healthy else 'unavailable'}")
    print(json.dumps(orchestrator.performance_report(), indent=2))
    return 0 if any(health.values()) else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    observability = get_settings().observability
    setup_logging(observability.log_level.upper(), observability.log_dir)

    if args.command == "models":
        return asyncio.run(_models())
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
