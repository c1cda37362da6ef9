"""Mock LLM model for local runs and tests."""

from typing import Any, AsyncGenerator, AsyncIterable, TypeVar

from strands.models import Model
from strands.types.content import Messages
from strands.types.streaming import StreamEvent

T = TypeVar("T")

MOCK_RESPONSE = "Mock LLM response"


class MockModel(Model):
    """Deterministic model selected with ``MOCK_LLM``.

    Every request is answered with ``response_text``. Requests are recorded
    in ``calls`` and ``system_prompts`` so callers can inspect what a
    provider actually sent.
    """

    def __init__(
        self,
        response_text: str = MOCK_RESPONSE,
        raise_error: bool = False,
        usage: tuple[int, int] | None = None,
    ) -> None:
        """Initialize the mock model.

        Args:
            response_text: Text streamed back for every request.
            raise_error: If True, raise an error on stream.
            usage: ``(input_tokens, output_tokens)`` reported per request.
        """
        self.response_text = response_text
        self.raise_error = raise_error
        self.usage = usage
        self.calls: list[Messages] = []
        self.system_prompts: list[str | None] = []
        self._config: dict[str, Any] = {}

    async def stream(
        self,
        messages: Messages,
        tool_specs: list[Any] | None = None,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> AsyncIterable[StreamEvent]:
        """Stream the canned response.

        Raises:
            RuntimeError: If raise_error is True.
        """
        self.calls.append(list(messages))
        self.system_prompts.append(system_prompt)
        if self.raise_error:
            raise RuntimeError("Mock LLM error for testing")

        yield {"messageStart": {"role": "assistant"}}
        yield {"contentBlockStart": {"contentBlockIndex": 0, "start": {}}}
        yield {
            "contentBlockDelta": {
                "contentBlockIndex": 0,
                "delta": {"text": self.response_text},
            }
        }
        yield {"contentBlockStop": {"contentBlockIndex": 0}}
        yield {"messageStop": {"stopReason": "end_turn"}}

        if self.usage is not None:
            input_tokens, output_tokens = self.usage
            yield {
                "metadata": {
                    "usage": {
                        "inputTokens": input_tokens,
                        "outputTokens": output_tokens,
                        "totalTokens": input_tokens + output_tokens,
                    },
                    "metrics": {"latencyMs": 0},
                }
            }

    async def structured_output(
        self,
        output_model: type[T],
        prompt: Messages,
        **kwargs: Any,
    ) -> AsyncGenerator[dict[str, T | Any], None]:
        """Structured output is not supported by the mock."""
        yield {}
        return

    def update_config(self, **model_config: Any) -> None:
        self._config.update(model_config)

    def get_config(self) -> dict[str, Any]:
        return self._config
