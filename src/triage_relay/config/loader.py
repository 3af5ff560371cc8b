"""Configuration loader with YAML parsing and environment variable substitution."""

import os
import re
from pathlib import Path

import yaml

from .schema import RelayConfig


def substitute_env_vars(text: str) -> str:
    """
    Replace ${VAR_NAME} patterns with environment variable values.

    Args:
        text: Text containing ${VAR_NAME} patterns

    Returns:
        Text with environment variables substituted

    Raises:
        ValueError: If a referenced environment variable is not found
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ValueError(f"Environment variable {var_name} not found")
        return value

    return re.sub(r"\$\{([^}]+)\}", replacer, text)


def load_config(path: Path) -> RelayConfig:
    """
    Load configuration from YAML file with environment variable substitution.

    This is the only place the process environment is read; the resulting
    RelayConfig is passed explicitly to every component.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated RelayConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If environment variables are missing or config is invalid
        ValidationError: If config doesn't match schema
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with path.open() as f:
        raw_yaml = f.read()

    yaml_with_env = substitute_env_vars(raw_yaml)

    config_dict = yaml.safe_load(yaml_with_env) or {}

    config = RelayConfig.model_validate(config_dict)

    validate_config(config)

    return config


def validate_config(config: RelayConfig) -> None:
    """
    Perform additional cross-field validation.

    Args:
        config: Configuration to validate

    Raises:
        ValueError: If a setting required at runtime is missing
    """
    if not config.server.webhook_secret:
        raise ValueError("server.webhook_secret is required to verify webhook signatures")

    if not config.github.token:
        raise ValueError("github.token is required to post clarification comments")

    if not any(policy.enabled for policy in config.repositories.values()):
        raise ValueError("No enabled repositories configured")
