"""
Deploy step tests: credential check, terraform apply, image build and push.
"""

from unittest.mock import Mock, patch

import pytest

from cpdeploy.commands import DeployError
from cpdeploy.config import load_settings
from cpdeploy.steps import (
    DeployState,
    build_images,
    check_aws_config,
    deploy_infrastructure,
    push_images,
)

from conftest import ACCOUNT_ID, ALB_DNS, REGISTRY, commands_run, fake_tool


@pytest.fixture
def state(repo):
    return DeployState(settings=load_settings(repo), repo_root=repo)


class TestCheckAwsConfig:
    def test_records_account_id(self, state, capsys):
        with patch("subprocess.run", side_effect=fake_tool) as mock_run:
            check_aws_config(state)

        assert state.account_id == ACCOUNT_ID
        assert commands_run(mock_run) == [
            ["aws", "sts", "get-caller-identity", "--query", "Account", "--output", "text"]
        ]
        assert f"AWS CLI configured for account: {ACCOUNT_ID}" in capsys.readouterr().out

    def test_failing_identity_query(self, state):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = Mock(returncode=255, stdout="", stderr="Unable to locate credentials")

            with pytest.raises(DeployError, match="AWS CLI is not configured. Run 'aws configure' first."):
                check_aws_config(state)

        assert state.account_id is None

    def test_missing_aws_binary(self, state):
        with patch("subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(DeployError, match="AWS CLI is not configured"):
                check_aws_config(state)

    def test_empty_account_id(self, state):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="\n", stderr="")

            with pytest.raises(DeployError, match="AWS CLI is not configured"):
                check_aws_config(state)


class TestDeployInfrastructure:
    def test_init_plan_apply_output_in_terraform_dir(self, state, repo, capsys):
        with patch("subprocess.run", side_effect=fake_tool) as mock_run:
            deploy_infrastructure(state)

        assert commands_run(mock_run) == [
            ["terraform", "init"],
            ["terraform", "plan"],
            ["terraform", "apply", "-auto-approve"],
            ["terraform", "output", "-raw", "alb_dns_name"],
        ]
        for call in mock_run.call_args_list:
            assert call.kwargs["cwd"] == repo / "deploy"

        assert state.alb_dns_name == ALB_DNS
        out = capsys.readouterr().out
        assert "Infrastructure deployed successfully" in out
        assert f"Application URL: http://{ALB_DNS}" in out

    def test_apply_failure_stops_before_output(self, state):
        def failing_apply(cmd, *args, **kwargs):
            if cmd[:2] == ["terraform", "apply"]:
                return Mock(returncode=1, stdout=None, stderr=None)
            return fake_tool(cmd, *args, **kwargs)

        with patch("subprocess.run", side_effect=failing_apply) as mock_run:
            with pytest.raises(DeployError, match="terraform apply -auto-approve"):
                deploy_infrastructure(state)

        assert ["terraform", "output", "-raw", "alb_dns_name"] not in commands_run(mock_run)
        assert state.alb_dns_name is None

    def test_missing_terraform_dir(self, state, repo):
        (repo / "deploy" / "terraform.tfvars").unlink()
        (repo / "deploy").rmdir()

        with patch("subprocess.run") as mock_run:
            with pytest.raises(DeployError, match="Terraform directory not found"):
                deploy_infrastructure(state)
            mock_run.assert_not_called()


class TestBuildAndPushImages:
    def test_registry_requires_account_id(self, state):
        with pytest.raises(DeployError, match="account id"):
            state.image_ref("backend")

    def test_build_logs_in_then_builds_both_images(self, state, repo):
        state.account_id = ACCOUNT_ID

        with patch("subprocess.run", side_effect=fake_tool) as mock_run:
            build_images(state)

        assert commands_run(mock_run) == [
            ["aws", "ecr", "get-login-password", "--region", "ap-northeast-2"],
            ["docker", "login", "--username", "AWS", "--password-stdin", REGISTRY],
            ["docker", "build", "--platform", "linux/amd64",
             "-t", f"{REGISTRY}/code-playground-backend:latest", "apps/backend"],
            ["docker", "build", "--platform", "linux/amd64",
             "-t", f"{REGISTRY}/code-playground-frontend:latest", "apps/frontend"],
        ]
        login_call = mock_run.call_args_list[1]
        assert login_call.kwargs["input"] == "ecr-password"
        assert mock_run.call_args_list[2].kwargs["cwd"] == repo

    def test_failed_ecr_login_stops_build(self, state):
        state.account_id = ACCOUNT_ID

        def failing_login(cmd, *args, **kwargs):
            if cmd[:2] == ["docker", "login"]:
                return Mock(returncode=1, stdout="", stderr="denied")
            return fake_tool(cmd, *args, **kwargs)

        with patch("subprocess.run", side_effect=failing_login) as mock_run:
            with pytest.raises(DeployError, match="denied"):
                build_images(state)

        assert not any(cmd[:2] == ["docker", "build"] for cmd in commands_run(mock_run))

    def test_push_both_images(self, state, capsys):
        state.account_id = ACCOUNT_ID

        with patch("subprocess.run", side_effect=fake_tool) as mock_run:
            push_images(state)

        assert commands_run(mock_run) == [
            ["docker", "push", f"{REGISTRY}/code-playground-backend:latest"],
            ["docker", "push", f"{REGISTRY}/code-playground-frontend:latest"],
        ]
        assert "Images pushed to ECR" in capsys.readouterr().out

    def test_custom_region_and_context(self, repo):
        (repo / "cpdeploy.toml").write_text(
            '[deploy]\nregion = "us-east-1"\nproject_name = "cp"\n\n'
            '[images.context]\nbackend = "services/api"\n',
            encoding="utf-8",
        )
        state = DeployState(settings=load_settings(repo), repo_root=repo, account_id=ACCOUNT_ID)

        with patch("subprocess.run", side_effect=fake_tool) as mock_run:
            build_images(state)

        registry = f"{ACCOUNT_ID}.dkr.ecr.us-east-1.amazonaws.com"
        cmds = commands_run(mock_run)
        assert cmds[0] == ["aws", "ecr", "get-login-password", "--region", "us-east-1"]
        assert cmds[2][-3:] == ["-t", f"{registry}/cp-backend:latest", "services/api"]
        assert cmds[3][-1] == "apps/frontend"


class TestEmptyTerraformOutput:
    def test_empty_dns_name_fails(self, state, capsys):
        def blank_output(cmd, *args, **kwargs):
            if cmd[:2] == ["terraform", "output"]:
                return Mock(returncode=0, stdout="\n", stderr="")
            return fake_tool(cmd, *args, **kwargs)

        with patch("subprocess.run", side_effect=blank_output):
            with pytest.raises(DeployError, match="'alb_dns_name' is empty"):
                deploy_infrastructure(state)

        assert "Application URL" not in capsys.readouterr().out
