"""Pydantic models for configuration schema."""

import re
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    """Webhook server configuration."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(3847, ge=1, le=65535)
    webhook_secret: str = ""
    body_limit: int = Field(1024 * 1024, ge=1024, description="Max request body in bytes")
    rate_limit_requests: int = Field(10, ge=1, description="Requests per window per client")
    rate_limit_window: float = Field(60.0, gt=0, description="Rate limit window in seconds")


class GitHubConfig(BaseModel):
    """GitHub-specific configuration."""

    token: str = ""
    owner: str
    api_url: str = "https://api.github.com"

    @field_validator("owner")
    @classmethod
    def validate_owner(cls, v: str) -> str:
        """Validate owner name format."""
        from ..utils.security import validate_name

        if not validate_name(v):
            raise ValueError(f"Invalid GitHub owner: {v}")
        return v


class AnthropicConfig(BaseModel):
    """Anthropic-specific configuration."""

    api_key: str
    model: str = "claude-opus-4-20250514"
    max_tokens: int = Field(4096, ge=1)
    temperature: float = Field(0.2, ge=0.0, le=1.0)


class SlackConfig(BaseModel):
    """Slack notification configuration."""

    bot_token: str
    channel: str

    @field_validator("bot_token")
    @classmethod
    def validate_bot_token(cls, v: str) -> str:
        """Validate Slack bot token format."""
        if not v.startswith("xoxb-"):
            raise ValueError("Bot token must start with xoxb-")
        return v


class FixAgentConfig(BaseModel):
    """Autonomous fix agent configuration."""

    spawn_script: str
    container: str
    prompt_dir: Path = Path(".prompts")
    docker_path: str = "docker"


class TimeoutConfig(BaseModel):
    """Per-collaborator timeouts in seconds."""

    classifier: float = Field(120.0, gt=0)
    notifier: float = Field(30.0, gt=0)
    commenter: float = Field(30.0, gt=0)
    fix_invoker: float = Field(180.0, gt=0)

    @model_validator(mode="after")
    def check_fix_invoker_longest(self) -> "TimeoutConfig":
        """The fix invoker only confirms a start but must have the longest timeout."""
        others = max(self.classifier, self.notifier, self.commenter)
        if self.fix_invoker < others:
            raise ValueError(
                f"fix_invoker timeout ({self.fix_invoker}s) must be the longest "
                f"(others up to {others}s)"
            )
        return self


class DedupConfig(BaseModel):
    """Deduplication window configuration."""

    ttl: float = Field(24 * 60 * 60, gt=0, description="Dedup window in seconds")
    sweep_interval: float = Field(60 * 60, gt=0, description="Eviction sweep period in seconds")


class RepositoryPolicyConfig(BaseModel):
    """Triage policy for one repository."""

    enabled: bool = True
    auto_action_enabled: bool = False
    sensitive_topic_patterns: list[str] = []
    priority: str = "normal"
    project_location: str = ""

    @field_validator("sensitive_topic_patterns")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        """Every pattern must compile as a regular expression."""
        for pattern in v:
            try:
                re.compile(pattern, re.IGNORECASE)
            except re.error as e:
                raise ValueError(f"Invalid sensitive topic pattern {pattern!r}: {e}") from e
        return v


class FileLoggingConfig(BaseModel):
    """File logging configuration."""

    enabled: bool = False
    path: Path = Path("/var/log/triage-relay/relay.log")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"
    file: FileLoggingConfig = FileLoggingConfig()


class RuntimeConfig(BaseModel):
    """Runtime configuration."""

    shutdown_timeout: float = Field(
        30.0, ge=0, description="Seconds to wait for in-flight triage tasks on shutdown"
    )


class RelayConfig(BaseSettings):
    """Root configuration for the triage relay."""

    server: ServerConfig = ServerConfig()
    github: GitHubConfig
    anthropic: AnthropicConfig
    slack: SlackConfig
    fix_agent: FixAgentConfig
    timeouts: TimeoutConfig = TimeoutConfig()
    dedup: DedupConfig = DedupConfig()
    repositories: dict[str, RepositoryPolicyConfig] = {}
    logging: LoggingConfig = LoggingConfig()
    runtime: RuntimeConfig = RuntimeConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
    )

    @field_validator("repositories")
    @classmethod
    def validate_repository_names(
        cls, v: dict[str, RepositoryPolicyConfig]
    ) -> dict[str, RepositoryPolicyConfig]:
        """Validate repository names."""
        from ..utils.security import validate_name

        for name in v:
            if not validate_name(name):
                raise ValueError(f"Invalid repository name: {name}")
        return v
