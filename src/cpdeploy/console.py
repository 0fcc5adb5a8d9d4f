#!/usr/bin/env python3
"""
Console output and run tracking for cpdeploy.

Status lines are colored and flushed immediately so they interleave correctly
with the streamed output of terraform and docker.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import TypedDict


# Color codes for output
BLUE = '\033[94m'
GREEN = '\033[92m'
YELLOW = '\033[93m'
RED = '\033[91m'
RESET = '\033[0m'

# Debug logging is opt-in and tied to deploy.log_level.
DEBUG_ENABLED = False

logger = logging.getLogger(__name__)


def set_debug_enabled(log_level: str | None) -> None:
    """Enable debug logging when log_level is DEBUG (case-insensitive)."""
    global DEBUG_ENABLED
    DEBUG_ENABLED = str(log_level or '').strip().upper() == 'DEBUG'


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure logging module with specified level.
    """
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR
    }

    level = level_map.get(log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='[%(levelname)s] %(message)s',
        force=True  # Reconfigure if already configured
    )
    set_debug_enabled(log_level)
    logger.debug(f"Logging configured: {log_level.upper()}")


class RunSummary(TypedDict):
    deployment_id: str
    duration_seconds: int
    steps_completed: int


class DeploymentContext:
    """Track deployment progress for reporting and error handling."""

    def __init__(self) -> None:
        self.deployment_id = uuid.uuid4().hex[:8]
        self.start_time = time.time()
        self.current_step: str | None = None
        self.steps_completed: list[str] = []

    def set_step(self, step_name: str) -> None:
        self.current_step = step_name

    def record_success(self, step_name: str) -> None:
        self.steps_completed.append(step_name)
        self.current_step = None

    def get_summary(self) -> RunSummary:
        duration_seconds = int(time.time() - self.start_time)
        return {
            'deployment_id': self.deployment_id,
            'duration_seconds': duration_seconds,
            'steps_completed': len(self.steps_completed),
        }


_DEPLOYMENT_CONTEXT: DeploymentContext | None = None


def get_deployment_context() -> DeploymentContext:
    """Get or create the singleton deployment context."""
    global _DEPLOYMENT_CONTEXT
    if _DEPLOYMENT_CONTEXT is None:
        _DEPLOYMENT_CONTEXT = DeploymentContext()
    return _DEPLOYMENT_CONTEXT


def reset_deployment_context() -> DeploymentContext:
    """Start a fresh context (one per CLI invocation)."""
    global _DEPLOYMENT_CONTEXT
    _DEPLOYMENT_CONTEXT = DeploymentContext()
    return _DEPLOYMENT_CONTEXT


def _print_context(context: dict) -> None:
    for key, value in context.items():
        print(f"  {key}: {value}", flush=True)


def info(msg, **context):
    """Log info message with optional structured context."""
    print(f"{BLUE}[INFO]{RESET} {msg}", flush=True)
    _print_context(context)


def success(msg, **context):
    """Log success message with optional structured context."""
    print(f"{GREEN}[SUCCESS]{RESET} {msg}", flush=True)
    _print_context(context)


def warn(msg, **context):
    """Log warning message with optional structured context."""
    print(f"{YELLOW}[WARN]{RESET} {msg}", flush=True)
    _print_context(context)


def error(msg, **context):
    """Log error message with optional structured context."""
    print(f"{RED}[ERROR]{RESET} {msg}", flush=True)
    _print_context(context)


def debug(msg, **context):
    """Log debug message (only shown when DEBUG logging is enabled)."""
    if not DEBUG_ENABLED:
        return
    print(f"{BLUE}[DEBUG]{RESET} {msg}", flush=True)
    _print_context(context)


def report_failure(msg: str) -> None:
    """Print the error and the deployment summary for a failed run."""
    ctx = get_deployment_context()
    if ctx.current_step:
        error(msg, step=ctx.current_step)
    else:
        error(msg)

    summary = ctx.get_summary()
    print(f"\n{RED}[DEPLOYMENT FAILED]{RESET}")
    print(f"  Deployment ID: {summary['deployment_id']}")
    print(f"  Duration: {summary['duration_seconds']}s")
    print(f"  Steps completed: {summary['steps_completed']}")


def report_summary() -> None:
    """Print the deployment summary for a successful run."""
    summary = get_deployment_context().get_summary()
    info("=" * 70)
    info(f"Deployment ID: {summary['deployment_id']}")
    info(f"Duration: {summary['duration_seconds']}s")
    info(f"Steps completed: {summary['steps_completed']}")
    info("=" * 70)
