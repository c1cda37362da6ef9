"""ConversationRepository protocol."""

from typing import Protocol

from chatrelay.domain.entities.conversation import Conversation, ConversationPatch
from chatrelay.domain.entities.message import (
    Message,
    MessageOptions,
    MessagePatch,
    MessageRole,
)


class ConversationRepository(Protocol):
    """Repository protocol for conversations and their messages."""

    async def get_or_create_conversation(
        self,
        platform: str,
        channel_id: str,
        user_id: str,
        title: str | None = None,
    ) -> Conversation:
        """Return the active conversation for the key, creating it if absent.

        Args:
            platform: Platform name.
            channel_id: Platform channel identifier.
            user_id: Platform user identifier.
            title: Title used only when a conversation is created.

        Returns:
            The active conversation.
        """
        ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        ...

    async def add_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        options: MessageOptions | None = None,
    ) -> Message:
        """Insert a message and bump the conversation counters atomically.

        Raises:
            LookupError: If the conversation does not exist.
        """
        ...

    async def add_user_message(
        self,
        platform: str,
        channel_id: str,
        user_id: str,
        content: str,
        platform_message_id: str | None = None,
        platform_data: dict | None = None,
    ) -> tuple[Conversation, Message]:
        """Resolve the sender's conversation and store a user message."""
        ...

    async def add_assistant_message(
        self,
        conversation_id: str,
        content: str,
        options: MessageOptions | None = None,
    ) -> Message:
        """Store an assistant reply."""
        ...

    async def get_conversation_history(
        self, conversation_id: str, max_tokens: int | None = None
    ) -> list[Message]:
        """Return messages oldest first, trimmed to ``max_tokens`` if given."""
        ...

    async def find_conversation_by_platform_message(
        self, platform_message_id: str
    ) -> tuple[Conversation | None, Message | None]:
        """Reverse lookup of a conversation through a platform message id."""
        ...

    async def deactivate_conversation(self, conversation_id: str) -> None:
        """Mark a conversation inactive without touching its messages."""
        ...

    async def cleanup_old_messages(
        self, conversation_id: str, keep_count: int = 100
    ) -> int:
        """Delete all but the ``keep_count`` newest messages.

        Returns:
            Number of deleted messages.
        """
        ...

    async def update_conversation(
        self, conversation_id: str, patch: ConversationPatch
    ) -> Conversation | None:
        """Apply a partial update to a conversation.

        Raises:
            ValueError: If reactivating would give the key a second active
                conversation.
        """
        ...

    async def update_message(
        self, message_id: str, patch: MessagePatch
    ) -> Message | None:
        """Apply a partial update to a message."""
        ...
