"""Slack notification adapter.

Posts plain text triage notifications to a single configured channel using
the Slack Web API.
"""

from __future__ import annotations

import aiohttp
import structlog
from slack_sdk.errors import SlackApiError, SlackClientError
from slack_sdk.web.async_client import AsyncWebClient

from ...config.schema import SlackConfig
from ...utils.async_helpers import NotifyError

log = structlog.get_logger()


class SlackNotifier:
    """Slack adapter implementing the Notifier protocol.

    Example:
        config = SlackConfig(bot_token="xoxb-...", channel="#triage")
        notifier = SlackNotifier(config)

        await notifier.notify("New Issue: widgets#42")
    """

    def __init__(
        self,
        config: SlackConfig,
        timeout: float = 30.0,
        client: AsyncWebClient | None = None,
    ) -> None:
        """Initialize the Slack notifier.

        Args:
            config: Slack-specific configuration.
            timeout: Request timeout in seconds.
            client: Preconfigured web client. If None, creates one.
        """
        self._config = config
        self._client = client or AsyncWebClient(token=config.bot_token, timeout=int(timeout))

    async def notify(self, message: str) -> None:
        """Post a message to the configured channel.

        Args:
            message: Plain text message.

        Raises:
            NotifyError: If message delivery fails.
        """
        try:
            result = await self._client.chat_postMessage(
                channel=self._config.channel,
                text=message,
                unfurl_links=False,
            )
        except SlackApiError as e:
            log.error(
                "notification_failed",
                channel=self._config.channel,
                error=str(e),
            )
            raise NotifyError(f"Failed to send notification: {e}") from e
        except (SlackClientError, aiohttp.ClientError) as e:
            log.error(
                "notification_transport_failed",
                channel=self._config.channel,
                error=str(e),
            )
            raise NotifyError(f"Failed to reach Slack: {e}") from e

        log.debug(
            "notification_sent",
            channel=self._config.channel,
            message_ts=result.get("ts", ""),
        )
