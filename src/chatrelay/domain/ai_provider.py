"""AI provider contract and its failure types."""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from chatrelay.domain.entities.chat import AIResponse, ChatMessage


class ProviderError(Exception):
    """A single provider call failed.

    Attributes:
        provider: Name of the provider that failed.
        cause: Human-readable reason.
    """

    def __init__(self, provider: str, cause: str) -> None:
        super().__init__(f"{provider} provider failed: {cause}")
        self.provider = provider
        self.cause = cause


class AllProvidersFailedError(Exception):
    """Every configured provider failed for one request.

    Attributes:
        errors: The individual failures, primary first.
    """

    def __init__(self, errors: Sequence[ProviderError]) -> None:
        causes = "; ".join(str(error) for error in errors)
        super().__init__(f"All AI providers failed: {causes}")
        self.errors = list(errors)


@runtime_checkable
class AIProvider(Protocol):
    """A backend able to produce chat completions."""

    name: str

    async def chat(self, messages: Sequence[ChatMessage]) -> AIResponse:
        """Complete a conversation.

        Args:
            messages: Ordered role/content messages, ending with the user turn.

        Returns:
            The completion.

        Raises:
            ProviderError: On transport errors, error responses or empty content.
        """
        ...

    async def is_healthy(self) -> bool:
        """Return True if the backend is reachable."""
        ...
