#!/usr/bin/env python3

import os
import json
import math
import shutil
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

import logging
import sys

import toml
import yaml

from .exit_codes import ConfigurationError

logger = logging.getLogger("depsync")

DEFAULT_LOG_FORMAT = "[%(levelname)-5s] %(message)s"

# Tools each vendoring language shells out to
LANGUAGE_TOOLS = {
    "go": "go",
    "rust": "cargo",
}


def configure_logging(level: str = "INFO", fmt: str = DEFAULT_LOG_FORMAT) -> None:
    """Install a single stderr handler on the depsync logger."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    logger.propagate = False


class RecordLogger(logging.LoggerAdapter):
    """
    Logger bound to one repository record.

    Every message is prefixed with the record name so a multi-repository
    run stays attributable line by line. An instance is created per record
    and passed down the call chain explicitly.
    """

    def __init__(self, base: logging.Logger, prefix: str):
        super().__init__(base, {"prefix": prefix})

    @property
    def prefix(self) -> str:
        return self.extra["prefix"]

    def process(self, msg, kwargs):
        return f"{self.prefix}: {msg}", kwargs


def get_config_path():
    """Get the path to the configuration file.

    Checks in order:
    1. DEPSYNC_CONFIG environment variable
    2. ~/.depsync/ directory
    """
    if 'DEPSYNC_CONFIG' in os.environ:
        path = Path(os.environ['DEPSYNC_CONFIG'])
        if path.exists():
            return path

    depsync_dir = Path.home() / '.depsync'
    for filename in ['config.yaml', 'config.yml', 'config.toml', 'config.json']:
        path = depsync_dir / filename
        if path.exists():
            return path

    # If no file exists, return default path for saving
    return depsync_dir / 'config.yaml'


def load_config():
    """Load configuration from file."""
    config_path = get_config_path()

    # Start with default config
    config = get_default_config()

    if config_path.exists():
        try:
            if config_path.suffix.lower() in ['.toml']:
                with open(config_path, 'rb') as f:
                    file_config = tomllib.load(f)
            elif config_path.suffix.lower() in ['.yaml', '.yml']:
                with open(config_path, 'r') as f:
                    file_config = yaml.safe_load(f) or {}
            else:
                with open(config_path, 'r') as f:
                    file_config = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"failed to load config from {config_path}: {e}") from e

        config = merge_configs(config, file_config)

    return apply_env_overrides(config)


def save_config(config, config_path: Optional[Path] = None) -> Path:
    """Save configuration to file, choosing the format from the suffix."""
    config_path = Path(config_path or get_config_path())
    config_path.parent.mkdir(parents=True, exist_ok=True)

    suffix = config_path.suffix.lower()
    with open(config_path, 'w') as f:
        if suffix == '.toml':
            toml.dump(config, f)
        elif suffix in ['.yaml', '.yml']:
            yaml.safe_dump(config, f, default_flow_style=False)
        else:
            json.dump(config, f, indent=2)

    logger.info(f"Configuration saved to {config_path}")
    return config_path


def get_default_config():
    """Get default configuration."""
    return {
        "repos_file": "repos.csv",
        "output_dir": ".",
        "prepare_dir": "repos",
        "gitlab": {
            "api_url": "https://gitlab.com/api/v4",
            "project_id": "",
        },
        "http": {
            "timeout_seconds": 60,
        },
        "archive": {
            "xz_preset": 9,
        },
        "logging": {
            "level": "INFO",
            "format": DEFAULT_LOG_FORMAT,
        },
    }


def merge_configs(base_config, override_config):
    """
    Recursively merge two configuration dictionaries.

    Args:
        base_config (dict): Base configuration
        override_config (dict): Configuration to merge/override with

    Returns:
        dict: Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def apply_env_overrides(config, environ: Optional[Mapping[str, str]] = None):
    """
    Apply environment variable overrides to configuration.
    Environment variables follow the pattern: DEPSYNC_SECTION_KEY
    For example: DEPSYNC_HTTP_TIMEOUT_SECONDS=30
    """
    env_prefix = "DEPSYNC_"
    environ = os.environ if environ is None else environ

    for env_key, value in environ.items():
        if not env_key.startswith(env_prefix) or env_key == "DEPSYNC_CONFIG":
            continue

        key_parts = env_key[len(env_prefix):].lower().split('_')

        if value.lower() in ('true', 'yes', 'on'):
            typed_value = True
        elif value.lower() in ('false', 'no', 'off'):
            typed_value = False
        elif value.isdigit():
            typed_value = int(value)
        else:
            typed_value = value

        current_level = config
        i = 0
        while i < len(key_parts):
            # Longest config key that prefixes the remaining parts wins
            best_match_len = 0
            matched_key = None

            for config_key in current_level.keys():
                config_key_parts = config_key.split('_')
                if key_parts[i : i + len(config_key_parts)] == config_key_parts:
                    if len(config_key_parts) > best_match_len:
                        best_match_len = len(config_key_parts)
                        matched_key = config_key

            if matched_key is None:
                break

            if i + best_match_len == len(key_parts):
                current_level[matched_key] = typed_value
                break

            if isinstance(current_level[matched_key], dict):
                current_level = current_level[matched_key]
                i += best_match_len
            else:
                break

    return config


@dataclass(frozen=True)
class Credentials:
    """Secrets taken from the environment."""
    github_token: Optional[str] = None
    gitlab_auth_header: Optional[Dict[str, str]] = None
    gitlab_project_id: Optional[str] = None


def resolve_credentials(config, environ: Optional[Mapping[str, str]] = None) -> Credentials:
    """
    Collect forge and registry credentials.

    GITLAB_TOKEN is sent as PRIVATE-TOKEN; inside a GitLab CI job the
    CI_JOB_TOKEN is used as JOB-TOKEN instead. The project id comes from
    GITLAB_PROJECT_ID, the config file, or CI_PROJECT_ID.
    """
    environ = os.environ if environ is None else environ

    auth_header = None
    if environ.get('GITLAB_TOKEN'):
        auth_header = {'PRIVATE-TOKEN': environ['GITLAB_TOKEN']}
    elif environ.get('CI_JOB_TOKEN'):
        auth_header = {'JOB-TOKEN': environ['CI_JOB_TOKEN']}

    project_id = (
        environ.get('GITLAB_PROJECT_ID')
        or str(config.get('gitlab', {}).get('project_id') or '')
        or environ.get('CI_PROJECT_ID')
        or None
    )

    return Credentials(
        github_token=environ.get('GITHUB_TOKEN') or None,
        gitlab_auth_header=auth_header,
        gitlab_project_id=project_id,
    )


def _coerce_setting(config, section: str, key: str, cast: Callable[[Any], Any],
                    valid: Callable[[Any], bool]) -> Any:
    values = config.get(section)
    value = values.get(key) if isinstance(values, dict) else None
    try:
        coerced = cast(value)
    except (TypeError, ValueError):
        coerced = None
    if coerced is None or not valid(coerced):
        raise ConfigurationError(f"`{section}.{key}` is invalid: {value!r}")
    values[key] = coerced
    return coerced


def check_settings(config):
    """
    Coerce numeric settings in place.

    Values set through the environment arrive as strings, so
    `DEPSYNC_HTTP_TIMEOUT_SECONDS=1.5` becomes 1.5 here.

    Raises:
        ConfigurationError: A setting is not a number or out of range
    """
    _coerce_setting(config, "http", "timeout_seconds", float, lambda v: math.isfinite(v) and v > 0)
    _coerce_setting(config, "archive", "xz_preset", int, lambda v: 0 <= v <= 9)
    return config


def check_command(name: str) -> None:
    """Fail when an external tool is not on PATH."""
    if shutil.which(name) is None:
        raise ConfigurationError(f"`{name}` is missing")


def run_checks(
    credentials: Credentials,
    forges: Iterable[str],
    langs: Iterable[str],
    needs_registry: bool,
    needs_tools: bool = True,
) -> None:
    """
    Validate everything the run needs before touching any record.

    Args:
        credentials: Resolved credentials
        forges: Forges used by the selected records
        langs: Languages used by the selected records
        needs_registry: Whether the registry is queried or written to
        needs_tools: Whether vendoring tools will be invoked

    Raises:
        ConfigurationError: On the first missing tool or credential
    """
    if needs_tools:
        for lang in sorted(set(langs)):
            tool = LANGUAGE_TOOLS.get(lang)
            if tool:
                check_command(tool)

    if 'github' in set(forges) and not credentials.github_token:
        raise ConfigurationError("`GITHUB_TOKEN` is unset")

    if needs_registry:
        if not credentials.gitlab_auth_header:
            raise ConfigurationError("`GITLAB_TOKEN` is unset")
        if not credentials.gitlab_project_id:
            raise ConfigurationError("`GITLAB_PROJECT_ID` is unset")
