"""HTTP surface of the relay."""

from .app import create_app

__all__ = ["create_app"]
