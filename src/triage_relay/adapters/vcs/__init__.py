"""Version control adapters."""

from .github import GitHubCommenter

__all__ = ["GitHubCommenter"]
