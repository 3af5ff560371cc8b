"""Fix agent adapters."""

from .docker import DockerFixInvoker

__all__ = ["DockerFixInvoker"]
