"""Abstract interface for the notification channel."""

from typing import Protocol


class Notifier(Protocol):
    """Delivers a formatted text message to the human operator."""

    async def notify(self, message: str) -> None:
        """
        Send a notification.

        Args:
            message: Plain text message

        Raises:
            NotifyError: If delivery fails
        """
        ...
