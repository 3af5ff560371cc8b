"""Anthropic Claude analysis provider.

This module implements the AnalysisProvider protocol for Anthropic's Claude
models. It returns the raw response text; the classifier gateway owns
parsing and validation.

Requests are attempted once. The SDK's built-in retries are disabled.
"""

from __future__ import annotations

import anthropic
import structlog

from ...config.schema import AnthropicConfig
from ...utils.async_helpers import ProviderError

log = structlog.get_logger()


class AnthropicProvider:
    """Anthropic adapter implementing the AnalysisProvider protocol.

    Example:
        config = AnthropicConfig(api_key="sk-ant-...")
        provider = AnthropicProvider(config, timeout=120)

        text = await provider.complete(prompt)
    """

    def __init__(
        self,
        config: AnthropicConfig,
        timeout: float = 120.0,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        """Initialize the Anthropic provider.

        Args:
            config: Anthropic-specific configuration.
            timeout: Request timeout in seconds.
            client: Preconfigured SDK client. If None, creates one.
        """
        self._config = config
        self._client = client or anthropic.AsyncAnthropic(
            api_key=config.api_key,
            timeout=timeout,
            max_retries=0,
        )

    @property
    def model_name(self) -> str:
        """Return the model identifier being used."""
        return self._config.model

    async def complete(self, prompt: str) -> str:
        """Send the triage prompt and return the concatenated text blocks.

        Raises:
            ProviderError: If the API call fails or times out.
        """
        try:
            response = await self._client.messages.create(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as e:
            log.warning("anthropic_rate_limit", error=str(e))
            raise ProviderError(f"Anthropic rate limit exceeded: {e}") from e
        except anthropic.APITimeoutError as e:
            log.error("anthropic_timeout", error=str(e))
            raise ProviderError(f"Anthropic request timed out: {e}") from e
        except anthropic.APIError as e:
            log.error("anthropic_api_error", error=str(e))
            raise ProviderError(f"Anthropic API error: {e}") from e

        response_text = ""
        for block in response.content:
            if hasattr(block, "text"):
                response_text += block.text

        log.debug(
            "anthropic_response",
            model=self._config.model,
            length=len(response_text),
            stop_reason=getattr(response, "stop_reason", None),
        )
        return response_text

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.close()
