"""Token-bounded history windowing."""

import math
from collections.abc import Sequence

from chatrelay.domain.entities.chat import ChatMessage
from chatrelay.domain.entities.message import Message

CHARS_PER_TOKEN = 4


def estimate_token_count(text: str) -> int:
    """Estimate tokens for ``text`` at one token per four characters."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def message_token_cost(message: Message) -> int:
    """Return the recorded token count of a message, or an estimate."""
    if message.token_count is not None:
        return message.token_count
    return estimate_token_count(message.content)


def select_context_window(
    newest_first: Sequence[Message], max_tokens: int | None
) -> list[Message]:
    """Trim a history to a token budget.

    Messages are taken newest first until the next one would push the
    running total over ``max_tokens``. The newest message is always kept,
    even when it alone exceeds the budget. The result is oldest first.

    Args:
        newest_first: Conversation messages ordered newest first.
        max_tokens: Token budget, or None for no limit.

    Returns:
        The retained messages ordered oldest first.
    """
    if max_tokens is None:
        return list(reversed(newest_first))

    total = 0
    window: list[Message] = []
    for message in newest_first:
        cost = message_token_cost(message)
        if window and total + cost > max_tokens:
            break
        total += cost
        window.append(message)

    window.reverse()
    return window


def format_messages_for_ai(messages: Sequence[Message]) -> list[ChatMessage]:
    """Convert stored messages into role/content pairs for a provider."""
    return [
        ChatMessage(role=message.role.value, content=message.content)
        for message in messages
    ]
