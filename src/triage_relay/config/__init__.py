"""Configuration loading and validation."""

from .loader import load_config
from .schema import (
    AnthropicConfig,
    DedupConfig,
    FixAgentConfig,
    GitHubConfig,
    RelayConfig,
    RepositoryPolicyConfig,
    ServerConfig,
    SlackConfig,
    TimeoutConfig,
)

__all__ = [
    # Loader
    "load_config",
    # Root config
    "RelayConfig",
    # Top-level configs
    "DedupConfig",
    "RepositoryPolicyConfig",
    "ServerConfig",
    "TimeoutConfig",
    # Collaborator-specific configs
    "AnthropicConfig",
    "FixAgentConfig",
    "GitHubConfig",
    "SlackConfig",
]
