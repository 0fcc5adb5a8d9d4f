"""
Shared fixtures for cpdeploy tests.

No test runs a real aws, docker or terraform binary: every test that reaches
the command runner patches subprocess.run.
"""

import logging
from pathlib import Path
from unittest.mock import Mock

import pytest

from cpdeploy import console

ACCOUNT_ID = "123456789012"
REGISTRY = f"{ACCOUNT_ID}.dkr.ecr.ap-northeast-2.amazonaws.com"
ALB_DNS = "code-playground-alb-1234.ap-northeast-2.elb.amazonaws.com"

CLEAN_TFVARS = """\
aws_region   = "ap-northeast-2"
account_id   = "123456789012"
project_name = "code-playground"
db_password  = "s3cr3t-value"
"""


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    monkeypatch.delenv("CPDEPLOY_LOG_LEVEL", raising=False)
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    console.set_debug_enabled(None)
    yield
    console.set_debug_enabled(None)
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture
def repo(tmp_path) -> Path:
    """A repository layout with a filled-in terraform.tfvars."""
    (tmp_path / "deploy").mkdir()
    (tmp_path / "deploy" / "terraform.tfvars").write_text(CLEAN_TFVARS, encoding="utf-8")
    (tmp_path / "apps" / "backend").mkdir(parents=True)
    (tmp_path / "apps" / "frontend").mkdir(parents=True)
    return tmp_path


def fake_tool(cmd, *args, **kwargs):
    """Stand-in for subprocess.run that answers like healthy aws/terraform/docker."""
    if cmd[:3] == ["aws", "sts", "get-caller-identity"]:
        return Mock(returncode=0, stdout=f"{ACCOUNT_ID}\n", stderr="")
    if cmd[:3] == ["aws", "ecr", "get-login-password"]:
        return Mock(returncode=0, stdout="ecr-password\n", stderr="")
    if cmd[:2] == ["terraform", "output"]:
        return Mock(returncode=0, stdout=ALB_DNS, stderr="")
    return Mock(returncode=0, stdout="", stderr="")


def commands_run(mock_run) -> list[list[str]]:
    return [call.args[0] for call in mock_run.call_args_list]
