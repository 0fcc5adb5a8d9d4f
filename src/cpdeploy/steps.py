#!/usr/bin/env python3
"""
Deploy steps.

Each step is one short sequence of external commands guarded by a simple
precondition. Steps share a DeployState and never call each other; the order
is decided by the mode table in deploy.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .commands import DeployError, run_cmd
from .config import Settings
from .config_constants import ECR_USERNAME, IMAGE_NAMES, registry_host
from .console import debug, info, success, warn

DRY_RUN_ACCOUNT_ID = '<account-id>'
DRY_RUN_DNS_NAME = '<dry-run>'


@dataclass
class DeployState:
    settings: Settings
    repo_root: Path
    dry_run: bool = False
    account_id: Optional[str] = None
    alb_dns_name: Optional[str] = None

    @property
    def registry(self) -> str:
        if not self.account_id:
            raise DeployError("AWS account id is not known yet; run the credential check first")
        return registry_host(self.account_id, self.settings.region)

    def image_ref(self, image: str) -> str:
        """Full ECR reference, e.g. <acct>.dkr.ecr.<region>.amazonaws.com/code-playground-backend:latest"""
        return f"{self.registry}/{self.settings.image_repository(image)}:{self.settings.tag}"


def find_placeholder_lines(path: Path, markers: tuple[str, ...] | list[str]) -> list[tuple[int, str]]:
    """Return (line number, line) pairs that still contain a placeholder marker."""
    try:
        text = path.read_bytes().decode('utf-8', errors='replace')
    except OSError as exc:
        raise DeployError(f"Cannot read {path}: {exc}") from exc

    # Split on newlines only so numbering matches grep -n.
    lines = text.split('\n')
    if lines and lines[-1] == '':
        lines.pop()

    matches = []
    for index, line in enumerate(lines, start=1):
        if any(marker in line for marker in markers):
            matches.append((index, line))
    return matches


def check_prerequisites(state: DeployState) -> None:
    """Verify terraform.tfvars exists and has no placeholder values left."""
    info("Checking prerequisites...")
    tfvars_rel = state.settings.tfvars
    tfvars_path = state.repo_root / tfvars_rel

    if not tfvars_path.is_file():
        raise DeployError(
            f"{Path(tfvars_rel).name} not found. Please configure {tfvars_rel} first."
        )

    placeholder_lines = find_placeholder_lines(tfvars_path, state.settings.placeholders)
    if placeholder_lines:
        warn(f"Please update placeholder values in {tfvars_rel}:")
        for lineno, line in placeholder_lines:
            print(f"{lineno}:{line}", flush=True)
        raise DeployError("Update the configuration before proceeding.")

    success("Prerequisites check passed")


def check_aws_config(state: DeployState) -> None:
    """Verify the AWS CLI has working credentials and record the account id."""
    info("Checking AWS CLI configuration...")

    if state.dry_run:
        run_cmd(
            ["aws", "sts", "get-caller-identity", "--query", "Account", "--output", "text"],
            dry_run=True,
        )
        state.account_id = DRY_RUN_ACCOUNT_ID
        success(f"AWS CLI configured for account: {state.account_id}")
        return

    try:
        output = run_cmd(
            ["aws", "sts", "get-caller-identity", "--query", "Account", "--output", "text"],
            capture_output=True,
        )
    except DeployError as exc:
        debug(str(exc))
        raise DeployError("AWS CLI is not configured. Run 'aws configure' first.") from exc

    account_id = output.strip()
    if not account_id or account_id == 'None':
        raise DeployError("AWS CLI is not configured. Run 'aws configure' first.")

    state.account_id = account_id
    success(f"AWS CLI configured for account: {account_id}")


def deploy_infrastructure(state: DeployState) -> None:
    """Run terraform init, plan and apply, then read the load balancer DNS name."""
    info("Deploying infrastructure with Terraform...")
    terraform_dir = state.repo_root / state.settings.terraform_dir
    if not terraform_dir.is_dir():
        raise DeployError(f"Terraform directory not found: {terraform_dir}")

    run_cmd(["terraform", "init"], cwd=terraform_dir, dry_run=state.dry_run)
    run_cmd(["terraform", "plan"], cwd=terraform_dir, dry_run=state.dry_run)
    run_cmd(["terraform", "apply", "-auto-approve"], cwd=terraform_dir, dry_run=state.dry_run)

    output = run_cmd(
        ["terraform", "output", "-raw", state.settings.output_name],
        cwd=terraform_dir,
        capture_output=True,
        dry_run=state.dry_run,
    )
    state.alb_dns_name = DRY_RUN_DNS_NAME if state.dry_run else output.strip()
    if not state.alb_dns_name:
        raise DeployError(f"Terraform output '{state.settings.output_name}' is empty")

    success("Infrastructure deployed successfully")
    info(f"Application URL: http://{state.alb_dns_name}")


def ecr_login(state: DeployState) -> None:
    """Authenticate Docker to ECR with a short-lived login password."""
    region = state.settings.region
    registry = state.registry
    info(f"Logging in to ECR registry {registry}...")

    password = run_cmd(
        ["aws", "ecr", "get-login-password", "--region", region],
        capture_output=True,
        dry_run=state.dry_run,
    )
    run_cmd(
        ["docker", "login", "--username", ECR_USERNAME, "--password-stdin", registry],
        capture_output=True,
        input_text=password.strip(),
        dry_run=state.dry_run,
    )
    success("Logged in to ECR")


def build_images(state: DeployState) -> None:
    """Log in to ECR and build the backend and frontend images."""
    info("Building Docker images...")
    ecr_login(state)

    for image in IMAGE_NAMES:
        info(f"Building {image} image...")
        run_cmd(
            [
                "docker", "build",
                "--platform", state.settings.platform,
                "-t", state.image_ref(image),
                state.settings.image_contexts[image],
            ],
            cwd=state.repo_root,
            dry_run=state.dry_run,
        )

    success("Docker images built successfully")


def push_images(state: DeployState) -> None:
    """Push the backend and frontend images to ECR."""
    info("Pushing images to ECR...")

    for image in IMAGE_NAMES:
        run_cmd(["docker", "push", state.image_ref(image)], dry_run=state.dry_run)

    success("Images pushed to ECR")
