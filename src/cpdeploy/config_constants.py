#!/usr/bin/env python3
"""
Configuration constants for the CodePlayground deploy wrapper.

This is the single place that names the settings files, the built-in
defaults and the fixed image set. Other modules import from here instead of
repeating string literals.

Naming Convention:
- cpdeploy.toml.j2 = Settings template (rendered with Jinja2, then parsed)
- cpdeploy.toml    = Plain settings file (parsed directly)
"""

# ============================================================================
# Settings Filenames (repository root)
# ============================================================================

SETTINGS_TEMPLATE = 'cpdeploy.toml.j2'
SETTINGS_PLAIN = 'cpdeploy.toml'

# Search order when --config is not given
SETTINGS_SEARCH_ORDER = [SETTINGS_TEMPLATE, SETTINGS_PLAIN]

# ============================================================================
# Built-in Defaults
# ============================================================================

DEFAULT_REGION = 'ap-northeast-2'
DEFAULT_PROJECT_NAME = 'code-playground'

TERRAFORM_DIR = 'deploy'
TFVARS_FILE = 'deploy/terraform.tfvars'
ALB_OUTPUT_NAME = 'alb_dns_name'

# Markers left in terraform.tfvars.example that must be replaced before deploy
PLACEHOLDER_MARKERS = ['YOUR_ACCOUNT_ID', 'CHANGE_ME']

IMAGE_PLATFORM = 'linux/amd64'
IMAGE_TAG = 'latest'

# Images are built and pushed in this order. The set is fixed; only the
# build context of each image is configurable.
IMAGE_NAMES = ('backend', 'frontend')
IMAGE_CONTEXTS = {
    'backend': 'apps/backend',
    'frontend': 'apps/frontend',
}

ECR_USERNAME = 'AWS'

# Environment overrides
ENV_LOG_LEVEL = 'CPDEPLOY_LOG_LEVEL'


def registry_host(account_id: str, region: str) -> str:
    """
    Build the ECR registry host for an account and region.

    Examples:
        >>> registry_host('123456789012', 'ap-northeast-2')
        '123456789012.dkr.ecr.ap-northeast-2.amazonaws.com'
    """
    return f"{account_id}.dkr.ecr.{region}.amazonaws.com"

