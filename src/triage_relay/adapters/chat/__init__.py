"""Notification channel adapters."""

from .slack import SlackNotifier

__all__ = ["SlackNotifier"]
