"""SQL implementation of ConversationRepository."""

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.domain.context_window import select_context_window
from chatrelay.domain.entities.base import as_utc, utc_now
from chatrelay.domain.entities.conversation import Conversation, ConversationPatch
from chatrelay.domain.entities.message import (
    Message,
    MessageOptions,
    MessagePatch,
    MessageRole,
)
from chatrelay.infrastructure.persistence.database import Database

ONE_MICROSECOND = timedelta(microseconds=1)


@dataclass
class ConversationStats:
    """Aggregate figures for a conversation."""

    message_count: int
    total_tokens: int
    conversation: Conversation | None


class SqlConversationRepository:
    """SQLAlchemy implementation of ConversationRepository.

    Every public method runs in its own session/transaction obtained from
    :class:`Database`.
    """

    def __init__(self, database: Database) -> None:
        """Initialize the repository.

        Args:
            database: Database instance for session management.
        """
        self._database = database

    async def get_or_create_conversation(
        self,
        platform: str,
        channel_id: str,
        user_id: str,
        title: str | None = None,
    ) -> Conversation:
        """Return the active conversation for the key, creating it if absent.

        A partial unique index guarantees at most one active conversation
        per key. When a concurrent caller wins the insert, the lookup is
        repeated and the winner's row is returned.
        """
        async with self._database.get_session() as session:
            existing = await self._find_active(session, platform, channel_id, user_id)
        if existing is not None:
            return existing

        conversation = Conversation(
            platform=platform, channel_id=channel_id, user_id=user_id, title=title
        )
        try:
            async with self._database.get_session() as session:
                session.add(conversation)
        except IntegrityError:
            async with self._database.get_session() as session:
                existing = await self._find_active(
                    session, platform, channel_id, user_id
                )
            if existing is None:
                raise
            return existing
        return conversation

    async def _find_active(
        self, session: AsyncSession, platform: str, channel_id: str, user_id: str
    ) -> Conversation | None:
        statement = (
            select(Conversation)
            .where(Conversation.platform == platform)
            .where(Conversation.channel_id == channel_id)
            .where(Conversation.user_id == user_id)
            .where(Conversation.is_active.is_(True))  # type: ignore[attr-defined]
            .order_by(Conversation.last_message_at.desc())  # type: ignore[attr-defined]
            .limit(1)
        )
        result = await session.execute(statement)
        return result.scalars().first()

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        async with self._database.get_session() as session:
            return await session.get(Conversation, conversation_id)

    async def add_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        options: MessageOptions | None = None,
    ) -> Message:
        """Insert a message and bump the conversation counters atomically.

        ``created_at`` is kept strictly increasing within a conversation so
        that it can be used for ordering, and ``last_message_at`` is set to
        the same value.

        Raises:
            LookupError: If the conversation does not exist.
        """
        options = options or MessageOptions()
        async with self._database.get_session() as session:
            conversation = await session.get(Conversation, conversation_id)
            if conversation is None:
                raise LookupError(f"Conversation not found: {conversation_id}")

            now = utc_now()
            created_at = now
            if conversation.message_count > 0:
                created_at = max(
                    now, as_utc(conversation.last_message_at) + ONE_MICROSECOND
                )

            message = Message(
                conversation_id=conversation_id,
                role=role,
                content=content,
                created_at=created_at,
                updated_at=created_at,
                **options.model_dump(exclude_none=True),
            )
            session.add(message)
            await session.flush()

            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)  # type: ignore[arg-type]
                .values(
                    message_count=Conversation.message_count + 1,
                    last_message_at=created_at,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        return message

    async def add_user_message(
        self,
        platform: str,
        channel_id: str,
        user_id: str,
        content: str,
        platform_message_id: str | None = None,
        platform_data: dict | None = None,
    ) -> tuple[Conversation, Message]:
        """Resolve the conversation for the sender and store a user message."""
        conversation = await self.get_or_create_conversation(
            platform, channel_id, user_id
        )
        message = await self.add_message(
            conversation.id,
            MessageRole.USER,
            content,
            MessageOptions(
                platform_message_id=platform_message_id,
                platform_data=platform_data or None,
            ),
        )
        return conversation, message

    async def add_assistant_message(
        self,
        conversation_id: str,
        content: str,
        options: MessageOptions | None = None,
    ) -> Message:
        """Store an assistant reply."""
        return await self.add_message(
            conversation_id, MessageRole.ASSISTANT, content, options
        )

    async def get_conversation_history(
        self, conversation_id: str, max_tokens: int | None = None
    ) -> list[Message]:
        """Return messages oldest first, trimmed to ``max_tokens`` if given.

        See :func:`chatrelay.domain.context_window.select_context_window`
        for the trimming rule.
        """
        async with self._database.get_session() as session:
            statement = (
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(
                    Message.created_at.desc(),  # type: ignore[attr-defined]
                    Message.id.desc(),  # type: ignore[attr-defined]
                )
            )
            result = await session.execute(statement)
            newest_first = list(result.scalars().all())
        return select_context_window(newest_first, max_tokens)

    async def get_conversation_messages(
        self, conversation_id: str, limit: int = 100, offset: int = 0
    ) -> list[Message]:
        """Page through messages oldest first."""
        async with self._database.get_session() as session:
            statement = (
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(
                    Message.created_at.asc(),  # type: ignore[attr-defined]
                    Message.id.asc(),  # type: ignore[attr-defined]
                )
                .limit(limit)
                .offset(offset)
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def find_conversation_by_platform_message(
        self, platform_message_id: str
    ) -> tuple[Conversation | None, Message | None]:
        """Reverse lookup of a conversation through a platform message id.

        When several messages share the id, the earliest one wins.
        """
        async with self._database.get_session() as session:
            statement = (
                select(Message)
                .where(Message.platform_message_id == platform_message_id)
                .order_by(Message.created_at.asc())  # type: ignore[attr-defined]
                .limit(1)
            )
            result = await session.execute(statement)
            message = result.scalars().first()
            if message is None:
                return None, None
            conversation = await session.get(Conversation, message.conversation_id)
            return conversation, message

    async def find_or_create_conversation_by_platform_data(
        self,
        platform: str,
        channel_id: str,
        user_id: str,
        platform_message_id: str | None = None,
    ) -> Conversation:
        """Prefer the conversation owning ``platform_message_id``, if any."""
        if platform_message_id:
            conversation, _ = await self.find_conversation_by_platform_message(
                platform_message_id
            )
            if conversation is not None:
                return conversation
        return await self.get_or_create_conversation(platform, channel_id, user_id)

    async def get_user_conversations(
        self, user_id: str, platform: str | None = None, limit: int = 50
    ) -> list[Conversation]:
        """List a user's active conversations, most recent first."""
        async with self._database.get_session() as session:
            statement = (
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .where(Conversation.is_active.is_(True))  # type: ignore[attr-defined]
            )
            if platform is not None:
                statement = statement.where(Conversation.platform == platform)
            statement = statement.order_by(
                Conversation.last_message_at.desc()  # type: ignore[attr-defined]
            ).limit(limit)
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def update_conversation(
        self, conversation_id: str, patch: ConversationPatch
    ) -> Conversation | None:
        """Apply the fields explicitly set on ``patch``.

        Raises:
            ValueError: If reactivating would give the key a second active
                conversation.
        """
        try:
            async with self._database.get_session() as session:
                conversation = await session.get(Conversation, conversation_id)
                if conversation is None:
                    return None
                for field, value in patch.model_dump(exclude_unset=True).items():
                    setattr(conversation, field, value)
                conversation.updated_at = utc_now()
                session.add(conversation)
        except IntegrityError as e:
            raise ValueError(
                f"Another active conversation exists for {conversation_id}"
            ) from e
        return conversation

    async def update_message(
        self, message_id: str, patch: MessagePatch
    ) -> Message | None:
        """Apply the fields explicitly set on ``patch``."""
        async with self._database.get_session() as session:
            message = await session.get(Message, message_id)
            if message is None:
                return None
            for field, value in patch.model_dump(exclude_unset=True).items():
                setattr(message, field, value)
            message.updated_at = utc_now()
            session.add(message)
            return message

    async def deactivate_conversation(self, conversation_id: str) -> None:
        """Mark a conversation inactive without touching its messages."""
        await self.update_conversation(
            conversation_id, ConversationPatch(is_active=False)
        )

    async def cleanup_old_messages(
        self, conversation_id: str, keep_count: int = 100
    ) -> int:
        """Delete all but the ``keep_count`` newest messages.

        ``message_count`` is reset to the number of rows left.

        Raises:
            ValueError: If keep_count is negative.
        """
        if keep_count < 0:
            raise ValueError("keep_count must not be negative")

        async with self._database.get_session() as session:
            keep_statement = (
                select(Message.id)
                .where(Message.conversation_id == conversation_id)
                .order_by(
                    Message.created_at.desc(),  # type: ignore[attr-defined]
                    Message.id.desc(),  # type: ignore[attr-defined]
                )
                .limit(keep_count)
            )
            keep_ids = list((await session.execute(keep_statement)).scalars().all())

            statement = delete(Message).where(
                Message.conversation_id == conversation_id  # type: ignore[arg-type]
            )
            if keep_ids:
                statement = statement.where(
                    Message.id.not_in(keep_ids)  # type: ignore[attr-defined]
                )
            result = await session.execute(
                statement.execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0

            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)  # type: ignore[arg-type]
                .values(message_count=len(keep_ids), updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            return deleted

    async def get_conversation_stats(self, conversation_id: str) -> ConversationStats:
        """Count messages and sum recorded tokens for a conversation."""
        async with self._database.get_session() as session:
            count_result = await session.execute(
                select(func.count())
                .select_from(Message)
                .where(Message.conversation_id == conversation_id)
            )
            tokens_result = await session.execute(
                select(func.coalesce(func.sum(Message.token_count), 0)).where(
                    Message.conversation_id == conversation_id
                )
            )
            conversation = await session.get(Conversation, conversation_id)
            return ConversationStats(
                message_count=count_result.scalar_one(),
                total_tokens=int(tokens_result.scalar_one()),
                conversation=conversation,
            )

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Hard-delete a conversation and, by cascade, its messages.

        Administrative cleanup only; the normal flow deactivates instead.

        Returns:
            True if a conversation was deleted.
        """
        async with self._database.get_session() as session:
            result = await session.execute(
                delete(Conversation)
                .where(Conversation.id == conversation_id)  # type: ignore[arg-type]
                .execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0
