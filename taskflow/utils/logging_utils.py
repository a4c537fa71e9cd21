"""Logging utilities for TaskFlow."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

LOGGER_NAME = "taskflow"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Union[str, Path]] = "logs",
) -> logging.Logger:
    """Setup logging configuration for TaskFlow.

    Args:
        level: Console logging level (default: INFO)
        log_dir: Directory for the timestamped log file, None disables file logging

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    logger.handlers = []

    log_file = None
    if log_dir:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = logs_dir / f"taskflow_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    logger.info("=" * 80)
    logger.info("TaskFlow session started")
    if log_file:
        logger.info(f"Log file: {log_file}")
    logger.info("=" * 80)

    return logger


def log_state_transition(
    logger: logging.Logger,
    from_state: str,
    to_state: str,
    event: str,
    context: Dict[str, Any],
) -> None:
    """Log a lifecycle transition.

    Args:
        logger: Logger instance
        from_state: Status before the event
        to_state: Status after the event
        event: Event name that caused the transition
        context: Small summary of the agent context
    """
    logger.info(f"Lifecycle transition: {from_state} --{event}--> {to_state}")
    logger.debug(f"  Iteration: {context.get('iteration')}/{context.get('max_iterations')}")
    logger.debug(f"  Plan tasks: {context.get('plan_tasks', 0)}")
    if context.get("error"):
        logger.debug(f"  Error: {context.get('error')}")


def log_backend_selection(
    logger: logging.Logger,
    backend_id: str,
    complexity: str,
    strategy: str,
) -> None:
    """Log backend selection decision.

    Args:
        logger: Logger instance
        backend_id: Selected backend ID
        complexity: Complexity level of the request
        strategy: Selection strategy that made the choice
    """
    logger.info(f"Backend selected: {backend_id}")
    logger.debug(f"  Complexity: {complexity}, strategy: {strategy}")


def log_task_result(logger: logging.Logger, task_id: str, success: bool, duration_ms: int, detail: str = "") -> None:
    status = "✓ Success" if success else "✗ Failed"
    logger.info(f"Task {task_id}: {status} ({duration_ms} ms)")
    if detail:
        if len(detail) > 500:
            detail = detail[:500] + "... (truncated)"
        logger.debug(f"  Detail: {detail}")


def log_tool_call(logger: logging.Logger, tool_name: str, args: Dict[str, Any]) -> None:
    """Log tool invocation.

    Args:
        logger: Logger instance
        tool_name: Name of the tool being called
        args: Tool arguments
    """
    logger.info(f"Tool call: {tool_name}")
    logger.debug(f"  Arguments: {json.dumps(args, ensure_ascii=False, default=str)[:500]}")


def log_error(logger: logging.Logger, error: BaseException, context: str = "") -> None:
    """Log error with context.

    Args:
        logger: Logger instance
        error: Exception instance
        context: Additional context about where the error occurred
    """
    logger.error(f"Error occurred: {type(error).__name__}: {str(error)}")
    if context:
        logger.error(f"  Context: {context}")
    logger.debug("Full traceback:", exc_info=error)


def log_prompt(logger: logging.Logger, phase: str, prompt: str, max_length: int = 2000) -> None:
    """Log a prompt sent to a model, truncated to max_length characters."""
    shown = prompt if len(prompt) <= max_length else prompt[:max_length] + "... (truncated)"
    logger.debug(f"Prompt for {phase}:\n{shown}")

