#!/usr/bin/env python3
"""Run external tools (aws, docker, terraform) with fail-fast semantics."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Sequence

from .console import info

logger = logging.getLogger(__name__)


class DeployError(RuntimeError):
    """Raised when a deploy step hits a known error condition."""


def format_cmd(cmd: Sequence[str]) -> str:
    return ' '.join(str(part) for part in cmd)


def run_cmd(
    cmd: Sequence[str],
    *,
    cwd: Path | str | None = None,
    capture_output: bool = False,
    input_text: str | None = None,
    dry_run: bool = False,
) -> str:
    """
    Run a command and return its stdout.

    Output streams straight to the console unless ``capture_output`` is set.
    Any non-zero exit raises DeployError; nothing is retried.
    """
    cmd = [str(part) for part in cmd]
    where = f" (in {cwd})" if cwd else ""

    if dry_run:
        info(f"[dry-run] {format_cmd(cmd)}{where}")
        return ""

    info(f"Running: {format_cmd(cmd)}{where}")
    logger.debug(f"subprocess.run cwd={cwd} capture_output={capture_output} stdin={'yes' if input_text else 'no'}")

    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture_output,
            text=True,
            input=input_text,
        )
    except FileNotFoundError as exc:
        raise DeployError(
            f"Command not found: {cmd[0]}. Is it installed and in your PATH?"
        ) from exc

    if result.returncode != 0:
        details = ''
        if capture_output:
            details = (result.stderr or '').strip() or (result.stdout or '').strip()
        message = f"Command failed with exit code {result.returncode}: {format_cmd(cmd)}"
        if details:
            message = f"{message}\n{details}"
        raise DeployError(message)

    if not capture_output:
        return ""
    return result.stdout or ""
