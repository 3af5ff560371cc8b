"""Abstract interface for the analysis provider."""

from typing import Protocol


class AnalysisProvider(Protocol):
    """Language-model service that answers a triage prompt.

    Implementations return the provider's raw text. Parsing and validation
    belong to the classifier gateway, which treats the text as untrusted.
    """

    async def complete(self, prompt: str) -> str:
        """
        Send a prompt and return the model's text response.

        Args:
            prompt: Fully rendered triage prompt

        Returns:
            Raw response text (expected to hold one JSON object)

        Raises:
            ProviderError: If the provider is unreachable or rejects the request
        """
        ...

    @property
    def model_name(self) -> str:
        """Return the model identifier being used."""
        ...
