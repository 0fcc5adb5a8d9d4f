#!/usr/bin/env python3
"""
Deploy settings: built-in defaults, optional TOML overrides.

Loading pipeline:
1. Start from DEFAULT_SETTINGS
2. Render cpdeploy.toml.j2 with Jinja2 (context: env = process environment),
   or read cpdeploy.toml as-is
3. Parse with tomllib
4. Deep merge (key-level) over the defaults
5. Validate into a Settings object

The tfvars file is NOT loaded here; it belongs to terraform and is only
inspected for placeholder markers by the prerequisite check.
"""

from __future__ import annotations

import copy
import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .commands import DeployError
from .config_constants import (
    ALB_OUTPUT_NAME,
    DEFAULT_PROJECT_NAME,
    DEFAULT_REGION,
    ENV_LOG_LEVEL,
    IMAGE_CONTEXTS,
    IMAGE_NAMES,
    IMAGE_PLATFORM,
    IMAGE_TAG,
    PLACEHOLDER_MARKERS,
    SETTINGS_SEARCH_ORDER,
    TERRAFORM_DIR,
    TFVARS_FILE,
)

logger = logging.getLogger(__name__)


class ConfigError(DeployError):
    """Raised when the settings file cannot be read, rendered or validated."""


DEFAULT_SETTINGS: dict = {
    'deploy': {
        'region': DEFAULT_REGION,
        'project_name': DEFAULT_PROJECT_NAME,
        'log_level': 'INFO',
    },
    'terraform': {
        'dir': TERRAFORM_DIR,
        'tfvars': TFVARS_FILE,
        'output_name': ALB_OUTPUT_NAME,
    },
    'images': {
        'platform': IMAGE_PLATFORM,
        'tag': IMAGE_TAG,
        'placeholders': list(PLACEHOLDER_MARKERS),
        'context': dict(IMAGE_CONTEXTS),
    },
}


@dataclass(frozen=True)
class Settings:
    region: str
    project_name: str
    log_level: str
    terraform_dir: str
    tfvars: str
    output_name: str
    platform: str
    tag: str
    placeholders: tuple[str, ...]
    image_contexts: dict[str, str] = field(default_factory=dict)
    source: Optional[Path] = None

    def image_repository(self, image: str) -> str:
        """ECR repository name for one image, e.g. code-playground-backend."""
        return f"{self.project_name}-{image}"

    def to_dict(self) -> dict:
        return {
            'deploy': {
                'region': self.region,
                'project_name': self.project_name,
                'log_level': self.log_level,
            },
            'terraform': {
                'dir': self.terraform_dir,
                'tfvars': self.tfvars,
                'output_name': self.output_name,
            },
            'images': {
                'platform': self.platform,
                'tag': self.tag,
                'placeholders': list(self.placeholders),
                'context': dict(self.image_contexts),
            },
        }


def deep_merge_configs(base: dict, override: dict) -> dict:
    """
    Deep merge two config dicts (key-level). Values from ``override`` win.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge_configs(result[key], value)
        else:
            if key in result:
                logger.debug(f"  Override: {key} = {value} (was: {result[key]})")
            else:
                logger.debug(f"  New key: {key} = {value}")
            result[key] = copy.deepcopy(value)
    return result


def read_text_file(path: Path) -> str:
    """Read a settings file as UTF-8, reporting failures as ConfigError."""
    try:
        return path.read_text(encoding='utf-8')
    except UnicodeDecodeError as e:
        raise ConfigError(f"Settings file is not valid UTF-8: {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read settings file {path}: {e}") from e


def render_jinja2(template_path: Path, context: dict) -> str:
    """
    Render a Jinja2 settings template with the given context.
    """
    from jinja2 import Template, TemplateError

    logger.debug(f"Rendering Jinja2 template: {template_path}")
    template_content = read_text_file(template_path)

    try:
        return Template(template_content).render(**context)
    except TemplateError as e:
        raise ConfigError(f"Failed to render template {template_path}: {e}") from e


def parse_toml_string(toml_text: str, source: str) -> dict:
    """
    Parse TOML from a string with fail-fast error context.
    """
    try:
        return tomllib.loads(toml_text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse TOML from {source}: {e}") from e


def read_settings_file(path: Path) -> dict:
    """Read one settings file, rendering it first when it is a .j2 template."""
    if not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")

    if path.suffix == '.j2':
        text = render_jinja2(path, {'env': dict(os.environ)})
    else:
        text = read_text_file(path)
    return parse_toml_string(text, str(path))


def find_settings_file(repo_root: Path) -> Optional[Path]:
    """Return the first settings file found in the repository root."""
    for name in SETTINGS_SEARCH_ORDER:
        candidate = repo_root / name
        if candidate.is_file():
            return candidate
    return None


def _require_str(section: dict, key: str, where: str) -> str:
    value = section.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{where}.{key} must be a non-empty string")
    return value.strip()


def build_settings(data: dict, source: Optional[Path] = None) -> Settings:
    """Validate merged settings data into a Settings object."""
    for section in ('deploy', 'terraform', 'images'):
        if not isinstance(data.get(section, {}), dict):
            raise ConfigError(f"[{section}] must be a table")
    deploy = data.get('deploy', {})
    terraform = data.get('terraform', {})
    images = data.get('images', {})

    placeholders = images.get('placeholders', [])
    if not isinstance(placeholders, list) or not all(
        isinstance(marker, str) and marker for marker in placeholders
    ):
        raise ConfigError("images.placeholders must be a list of non-empty strings")

    contexts = images.get('context', {})
    if not isinstance(contexts, dict):
        raise ConfigError("images.context must be a table")
    unknown = sorted(set(contexts) - set(IMAGE_NAMES))
    if unknown:
        raise ConfigError(
            f"Unknown image(s) in images.context: {', '.join(unknown)} "
            f"(expected: {', '.join(IMAGE_NAMES)})"
        )
    image_contexts = {name: _require_str(contexts, name, 'images.context') for name in IMAGE_NAMES}

    log_level = os.environ.get(ENV_LOG_LEVEL) or deploy.get('log_level') or 'INFO'

    return Settings(
        region=_require_str(deploy, 'region', 'deploy'),
        project_name=_require_str(deploy, 'project_name', 'deploy'),
        log_level=str(log_level).upper(),
        terraform_dir=_require_str(terraform, 'dir', 'terraform'),
        tfvars=_require_str(terraform, 'tfvars', 'terraform'),
        output_name=_require_str(terraform, 'output_name', 'terraform'),
        platform=_require_str(images, 'platform', 'images'),
        tag=_require_str(images, 'tag', 'images'),
        placeholders=tuple(placeholders),
        image_contexts=image_contexts,
        source=source,
    )


def load_settings(repo_root: Path, config_path: Optional[Path] = None) -> Settings:
    """
    Load deploy settings for a repository.

    An explicit ``config_path`` must exist. Without one, the repository root
    is searched and built-in defaults are used when nothing is found.
    """
    if config_path is not None:
        source: Optional[Path] = config_path if config_path.is_absolute() else repo_root / config_path
    else:
        source = find_settings_file(repo_root)

    data = DEFAULT_SETTINGS
    if source is not None:
        logger.debug(f"Loading settings from {source}")
        data = deep_merge_configs(DEFAULT_SETTINGS, read_settings_file(source))
    else:
        logger.debug("No settings file found, using built-in defaults")

    return build_settings(data, source=source)


def settings_to_toml(settings: Settings) -> str:
    """Serialize resolved settings as TOML using tomli_w."""
    import tomli_w

    return tomli_w.dumps(settings.to_dict())
