"""Webhook-triggered GitHub issue triage relay."""

from triage_relay._version import __version__

__all__ = ["__version__"]
