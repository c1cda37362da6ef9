"""Primary/fallback orchestration over AI providers."""

from collections.abc import Sequence

from structlog.stdlib import BoundLogger

from chatrelay.config.models import DEFAULT_SYSTEM_PROMPT
from chatrelay.domain.ai_provider import (
    AIProvider,
    AllProvidersFailedError,
    ProviderError,
)
from chatrelay.domain.entities.chat import AIHealth, AIResponse, ChatMessage


class AIOrchestrator:
    """Routes chat requests to a primary provider with optional fallback.

    The fallback is tried exactly once, and only after the primary failed.
    """

    def __init__(
        self,
        primary: AIProvider,
        logger: BoundLogger,
        fallback: AIProvider | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            primary: Provider tried first.
            logger: Logger instance.
            fallback: Provider tried when the primary fails.
            system_prompt: Instruction placed ahead of every conversation.
        """
        self._primary = primary
        self._fallback = fallback
        self._logger = logger
        self._system_prompt = system_prompt

    @property
    def providers(self) -> list[AIProvider]:
        """Configured providers in the order they are tried."""
        if self._fallback is None:
            return [self._primary]
        return [self._primary, self._fallback]

    def build_messages(
        self, text: str, history: Sequence[ChatMessage]
    ) -> list[ChatMessage]:
        """Assemble system prompt, prior turns and the new user message."""
        return [
            ChatMessage(role="system", content=self._system_prompt),
            *history,
            ChatMessage(role="user", content=text),
        ]

    async def process_message(
        self, text: str, history: Sequence[ChatMessage] = ()
    ) -> AIResponse:
        """Get a completion for a user message.

        Args:
            text: The new user message.
            history: Prior turns, oldest first.

        Returns:
            The first successful provider response.

        Raises:
            AllProvidersFailedError: If every configured provider failed.
        """
        messages = self.build_messages(text, history)
        errors: list[ProviderError] = []

        for index, provider in enumerate(self.providers):
            try:
                response = await provider.chat(messages)
            except ProviderError as e:
                errors.append(e)
            except Exception as e:
                errors.append(ProviderError(provider.name, str(e) or type(e).__name__))
            else:
                if index > 0:
                    self._logger.info(
                        "Fallback AI provider succeeded", provider=provider.name
                    )
                return response

            self._logger.warning(
                "AI provider failed",
                provider=provider.name,
                error=str(errors[-1]),
                has_next=index + 1 < len(self.providers),
            )

        self._logger.error(
            "All AI providers failed", errors=[str(error) for error in errors]
        )
        raise AllProvidersFailedError(errors) from errors[-1]

    async def is_healthy(self) -> AIHealth:
        """Check every provider; overall health needs at least one path."""
        primary = await self._safe_health(self._primary)
        fallback = None
        if self._fallback is not None:
            fallback = await self._safe_health(self._fallback)
        return AIHealth(
            primary=primary, fallback=fallback, overall=primary or bool(fallback)
        )

    async def _safe_health(self, provider: AIProvider) -> bool:
        try:
            return await provider.is_healthy()
        except Exception as e:
            self._logger.warning(
                "AI provider health check raised", provider=provider.name, error=str(e)
            )
            return False
