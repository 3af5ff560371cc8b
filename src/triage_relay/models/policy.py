"""Data models for per-repository triage policy."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RepositoryPolicy:
    """Static triage configuration for one monitored repository."""

    enabled: bool = False
    auto_action_enabled: bool = False
    sensitive_topic_patterns: tuple[str, ...] = ()
    priority: str = "normal"  # informational only
    project_location: str = ""


# Policy for repositories that are not configured
DISABLED_POLICY = RepositoryPolicy()
