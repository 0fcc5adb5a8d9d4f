#!/usr/bin/env python3
"""
CodePlayground deployment orchestrator.

Builds the backend and frontend images, pushes them to ECR and applies the
Terraform plan in deploy/.

Modes (pick at most one):
    (none)           Full deployment: infrastructure, then image build and push
    --build-only     Only build and push images (ECR repositories must exist)
    --infra-only     Only deploy infrastructure
    -h, --help       Show help and exit

Options:
    --repo-root PATH     Repository root (default: current directory)
    --config PATH        Settings file (default: cpdeploy.toml.j2 / cpdeploy.toml)
    --print-config       Print resolved settings as TOML and exit
    --dry-run            Print external commands instead of running them
    --version            Show version and exit

Execution Order:
    - Steps run strictly in sequence; every step blocks until its command exits
    - Fail-fast: the first failing command ends the run with exit code 1
    - The tfvars placeholder check runs before any external tool is invoked
"""

from __future__ import annotations

import argparse
import os
import sys
import traceback
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from .cli_utils import get_cli_version
from .commands import DeployError
from .config import load_settings, settings_to_toml
from .config_constants import ENV_LOG_LEVEL
from .console import (
    BLUE,
    RED,
    RESET,
    YELLOW,
    configure_logging,
    debug,
    error,
    get_deployment_context,
    info,
    report_failure,
    report_summary,
    reset_deployment_context,
    success,
    warn,
)
from .steps import (
    DeployState,
    build_images,
    check_aws_config,
    check_prerequisites,
    deploy_infrastructure,
    push_images,
)


STEPS: dict[str, Callable[[DeployState], None]] = {
    'check_prerequisites': check_prerequisites,
    'check_aws_config': check_aws_config,
    'deploy_infrastructure': deploy_infrastructure,
    'build_images': build_images,
    'push_images': push_images,
}


class Mode(NamedTuple):
    banner: str
    steps: tuple[str, ...]
    done: str
    notes: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


# Infrastructure goes first in a full run because it creates the ECR
# repositories the images are pushed to.
MODES: dict[str, Mode] = {
    'full': Mode(
        banner="🚀 Starting CodePlayground deployment...",
        steps=('check_prerequisites', 'check_aws_config', 'deploy_infrastructure',
               'build_images', 'push_images'),
        done="🎉 Deployment completed successfully!",
        notes=("Your application should be available in a few minutes.",),
    ),
    'build_only': Mode(
        banner="Building and pushing images only...",
        steps=('check_prerequisites', 'check_aws_config', 'build_images', 'push_images'),
        done="Build completed!",
        warnings=("Note: This assumes infrastructure is already deployed (ECR repositories exist)",),
    ),
    'infra_only': Mode(
        banner="Deploying infrastructure only...",
        steps=('check_prerequisites', 'check_aws_config', 'deploy_infrastructure'),
        done="Infrastructure deployment completed!",
    ),
}


class DeployArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors in color and exits 1."""

    def error(self, message):
        print(f"{RED}[ERROR]{RESET} {message}", file=sys.stderr, flush=True)
        self.print_help()
        self.exit(1)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = DeployArgumentParser(
        prog="cpdeploy",
        description=(
            "CodePlayground Deployment Script\n\n"
            "Run with no option for a full deployment: infrastructure, then image build and push."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
        epilog="""
Deployment order:
  1. Infrastructure deployment (creates ECR repositories)
  2. Docker image build and push

Before running:
  1. Configure AWS CLI: aws configure
  2. Update deploy/terraform.tfvars with your settings
  3. Run: %(prog)s
        """
    )

    mode_group = parser.add_argument_group('Modes')
    modes = mode_group.add_mutually_exclusive_group()
    modes.add_argument('--build-only', dest='mode', action='store_const', const='build_only',
                       help='Only build and push images (requires infrastructure to be deployed first)')
    modes.add_argument('--infra-only', dest='mode', action='store_const', const='infra_only',
                       help='Only deploy infrastructure')

    option_group = parser.add_argument_group('Options')
    option_group.add_argument('--repo-root', type=Path, default=None, metavar='PATH',
                              help='Repository root directory (default: current working directory)')
    option_group.add_argument('--root-folder', dest='repo_root', type=Path, default=None, metavar='PATH',
                              help='Alias for --repo-root')
    option_group.add_argument('--config', type=Path, default=None, metavar='PATH',
                              help='Settings file (default: cpdeploy.toml.j2 or cpdeploy.toml in the repo root)')
    option_group.add_argument('--print-config', action='store_true',
                              help='Print resolved settings as TOML and exit')
    option_group.add_argument('--dry-run', action='store_true',
                              help='Print external commands instead of running them')
    option_group.add_argument('--version', action='version', version=f"cpdeploy {get_cli_version()}")
    return parser


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Unknown options print "Unknown option: <arg>" plus the help text and exit 1.
    """
    parser = build_parser()
    args, unknown = parser.parse_known_args(argv)
    if unknown:
        error(f"Unknown option: {unknown[0]}")
        parser.print_help()
        sys.exit(1)
    if args.mode is None:
        args.mode = 'full'
    return args


def run_mode(mode_name: str, state: DeployState) -> None:
    """Run the steps of one mode in order. Raises DeployError on the first failure."""
    mode = MODES[mode_name]
    ctx = get_deployment_context()

    info(mode.banner)
    for note in mode.warnings:
        warn(note)

    for index, step_name in enumerate(mode.steps, 1):
        debug(f"{BLUE}>>> Step {index}/{len(mode.steps)}: {step_name}{RESET}")
        ctx.set_step(step_name)
        STEPS[step_name](state)
        ctx.record_success(step_name)

    success(mode.done)
    for note in mode.notes:
        info(note)


def main(argv: Optional[list] = None) -> int:
    args = parse_arguments(argv)
    ctx = reset_deployment_context()

    repo_root = (args.repo_root or Path.cwd()).resolve()

    try:
        if not repo_root.is_dir():
            raise DeployError(f"Repository root does not exist: {repo_root}")

        # Settings loading is traced at the environment's level; the settings
        # file may then change it.
        configure_logging(os.environ.get(ENV_LOG_LEVEL) or 'INFO')
        settings = load_settings(repo_root, args.config)
        configure_logging(settings.log_level)
        debug(f"Deployment ID: {ctx.deployment_id}")
        debug(f"Repository root: {repo_root}")
        debug(f"Settings source: {settings.source or 'built-in defaults'}")

        if args.print_config:
            print(settings_to_toml(settings), end='')
            return 0

        if args.dry_run:
            warn("Dry-run mode: external commands are printed, not executed")

        state = DeployState(settings=settings, repo_root=repo_root, dry_run=args.dry_run)
        run_mode(args.mode, state)
    except DeployError as exc:
        report_failure(str(exc))
        return 1

    report_summary()
    return 0


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print(f"\n{YELLOW}[INTERRUPTED]{RESET} Deployment interrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"{RED}[FATAL]{RESET} Unexpected error: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    run()
