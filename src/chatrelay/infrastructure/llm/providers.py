"""AI providers backed by strands models."""

import asyncio
from collections.abc import Sequence
from typing import Any

import aiohttp
import structlog
from strands import Agent

from chatrelay.config.models import ProviderConfig
from chatrelay.domain.ai_provider import AIProvider, ProviderError
from chatrelay.domain.entities.chat import AIResponse, ChatMessage, TokenUsage
from chatrelay.infrastructure.llm.mock_model import MockModel
from chatrelay.infrastructure.llm.model_factory import (
    OLLAMA_PREFIX,
    Model,
    create_model,
)

DEFAULT_HOSTED_BASE_URL = "https://api.openai.com/v1"
HEALTH_CHECK_TIMEOUT = 5.0


class StrandsProvider:
    """Base provider running one-shot strands Agents over a model.

    A fresh Agent is built for every request, seeded with the supplied
    history, so providers hold no conversation state between calls.
    """

    name = "provider"

    def __init__(
        self,
        config: ProviderConfig,
        model: Model | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            config: Provider configuration.
            model: Prebuilt model; created from ``config`` when omitted.
            logger: Structured logger.
        """
        self._config = config
        self._model = model if model is not None else create_model(config)
        self._logger = logger or structlog.stdlib.get_logger(__name__)

    @property
    def model_id(self) -> str:
        return self._config.model_id

    @property
    def base_url(self) -> str | None:
        return self._config.base_url

    async def chat(self, messages: Sequence[ChatMessage]) -> AIResponse:
        """Complete a conversation whose last message is the user turn.

        System messages are merged into the agent's system prompt.

        Raises:
            ProviderError: If the model call fails or returns no content.
        """
        system_prompt, history, prompt = _split_messages(messages, self.name)

        agent = Agent(
            model=self._model,
            system_prompt=system_prompt,
            messages=history,
            tools=[],
            callback_handler=None,
        )
        try:
            result = await agent.invoke_async(prompt)
        except Exception as e:
            self._logger.warning(
                "AI provider call failed",
                provider=self.name,
                model=self.model_id,
                error=str(e),
            )
            raise ProviderError(self.name, str(e) or type(e).__name__) from e

        content = _extract_text(result)
        if not content:
            raise ProviderError(self.name, "No content in AI response")

        return AIResponse(
            content=content,
            usage=_extract_usage(result),
            provider=self.name,
            model=self.model_id,
        )

    def _health_url(self) -> str | None:
        if not self.base_url:
            return None
        return f"{self.base_url.rstrip('/')}/models"

    async def is_healthy(self) -> bool:
        """Check the provider's model listing endpoint."""
        if isinstance(self._model, MockModel):
            return not self._model.raise_error

        url = self._health_url()
        if url is None:
            return False

        headers = {}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        timeout = aiohttp.ClientTimeout(total=HEALTH_CHECK_TIMEOUT)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, headers=headers) as response:
                    return response.status < 400
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._logger.warning(
                "AI provider health check failed",
                provider=self.name,
                url=url,
                error=str(e),
            )
            return False


class HostedProvider(StrandsProvider):
    """Hosted completion API (OpenAI-compatible by default)."""

    name = "hosted"

    def _health_url(self) -> str | None:
        base_url = self.base_url or DEFAULT_HOSTED_BASE_URL
        return f"{base_url.rstrip('/')}/models"


class SelfHostedProvider(StrandsProvider):
    """Self-hosted completion endpoint (OpenAI-compatible server or Ollama)."""

    name = "self-hosted"

    def _health_url(self) -> str | None:
        if self.base_url and self.model_id.startswith(OLLAMA_PREFIX):
            return f"{self.base_url.rstrip('/')}/api/tags"
        return super()._health_url()


def create_provider(
    config: ProviderConfig,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> AIProvider:
    """Build the provider matching ``config.kind``."""
    if config.kind == "self_hosted":
        return SelfHostedProvider(config, logger=logger)
    return HostedProvider(config, logger=logger)


def _split_messages(
    messages: Sequence[ChatMessage], provider: str
) -> tuple[str | None, list[dict[str, Any]], str]:
    """Split chat messages into system prompt, strands history and prompt."""
    if not messages or messages[-1].role != "user":
        raise ProviderError(provider, "Conversation must end with a user message")

    system_parts = [m.content for m in messages if m.role == "system"]
    history = [
        {"role": m.role, "content": [{"text": m.content}]}
        for m in messages[:-1]
        if m.role != "system" and m.content
    ]
    system_prompt = "\n\n".join(system_parts) if system_parts else None
    return system_prompt, history, messages[-1].content


def _extract_text(result: Any) -> str:
    """Join the text blocks of an agent result message."""
    message = getattr(result, "message", None)
    if not isinstance(message, dict):
        return ""
    blocks = message.get("content") or []
    texts = [
        block["text"]
        for block in blocks
        if isinstance(block, dict) and isinstance(block.get("text"), str)
    ]
    return "".join(texts).strip()


def _extract_usage(result: Any) -> TokenUsage | None:
    """Read accumulated token usage from agent metrics, if reported."""
    metrics = getattr(result, "metrics", None)
    usage = getattr(metrics, "accumulated_usage", None)
    return usage_from_strands(usage)


def usage_from_strands(usage: Any) -> TokenUsage | None:
    """Convert a strands ``Usage`` mapping into :class:`TokenUsage`."""
    if not isinstance(usage, dict) or not usage.get("totalTokens"):
        return None
    return TokenUsage(
        prompt_tokens=int(usage.get("inputTokens", 0)),
        completion_tokens=int(usage.get("outputTokens", 0)),
        total_tokens=int(usage["totalTokens"]),
    )
