"""Tests for MessageProcessor."""

from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from chatrelay.application.services.ai_orchestrator import AIOrchestrator
from chatrelay.application.services.message_processor import MessageProcessor
from chatrelay.config.models import ProcessorConfig, QueueConfig
from chatrelay.domain.ai_provider import AllProvidersFailedError, ProviderError
from chatrelay.domain.entities.base import Platform
from chatrelay.domain.entities.chat import AIResponse, ChatMessage, TokenUsage
from chatrelay.domain.entities.job import PROCESS_MESSAGE_JOB, Job, MessageJob
from chatrelay.domain.entities.message import MessageRole
from chatrelay.infrastructure.job_queue import JobContext, JobQueue
from chatrelay.infrastructure.persistence import Database, SqlConversationRepository

APOLOGY = "Sorry, try again later."


class FakeProvider:
    """Provider recording requests and replying with a fixed text."""

    def __init__(self, reply: str = "Hi!", error: Exception | None = None) -> None:
        self.name = "hosted"
        self.reply = reply
        self.error = error
        self.requests: list[list[ChatMessage]] = []

    async def chat(self, messages: Sequence[ChatMessage]) -> AIResponse:
        self.requests.append(list(messages))
        if self.error is not None:
            raise self.error
        return AIResponse(
            content=self.reply,
            usage=TokenUsage(prompt_tokens=8, completion_tokens=4, total_tokens=12),
            provider=self.name,
            model="gpt-test",
        )

    async def is_healthy(self) -> bool:
        return True


class RecordingSender:
    """MessageSender that remembers every delivery."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, platform: Platform | str, channel_id: str, text: str) -> None:
        self.sent.append((Platform(platform).value, channel_id, text))
        if self.fail:
            raise RuntimeError("platform down")


@pytest.fixture
async def repository(tmp_path: Path) -> AsyncIterator[SqlConversationRepository]:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await database.initialize()
    yield SqlConversationRepository(database)
    await database.close()


@pytest.fixture
def queue() -> JobQueue:
    return JobQueue(QueueConfig(), MagicMock())


def make_context(queue: JobQueue, text: str = "hello") -> JobContext:
    payload = MessageJob.model_validate(
        {
            "platform": "telegram",
            "messageData": {"text": text, "channelId": "42", "messageId": "1001"},
            "conversationId": "42",
            "userId": "7",
        }
    ).to_payload()
    return JobContext(Job(name=PROCESS_MESSAGE_JOB, data=payload), queue)


def make_processor(
    repository: SqlConversationRepository,
    provider: FakeProvider,
    sender: RecordingSender,
) -> MessageProcessor:
    orchestrator = AIOrchestrator(provider, MagicMock(), system_prompt="Be kind.")
    return MessageProcessor(
        repository,
        orchestrator,
        sender,
        ProcessorConfig(apology_text=APOLOGY),
        MagicMock(),
    )


class TestProcess:
    """Tests for the happy path."""

    async def test_stores_both_messages_and_sends_reply(
        self, repository: SqlConversationRepository, queue: JobQueue
    ) -> None:
        sender = RecordingSender()
        processor = make_processor(repository, FakeProvider(reply="Hi!"), sender)

        result = await processor.process(make_context(queue))

        assert result == {"success": True, "response": "Hi!"}
        assert sender.sent == [("telegram", "42", "Hi!")]

        conversation = await repository.get_or_create_conversation(
            "telegram", "42", "7"
        )
        messages = await repository.get_conversation_messages(conversation.id)
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.USER, "hello"),
            (MessageRole.ASSISTANT, "Hi!"),
        ]
        assert messages[0].platform_message_id == "1001"
        assert messages[1].token_count == 12
        assert messages[1].ai_provider == "hosted"
        assert messages[1].ai_model == "gpt-test"

    async def test_reports_progress_checkpoints(
        self, repository: SqlConversationRepository, queue: JobQueue
    ) -> None:
        progress: list[int] = []
        queue.on("progress", lambda job, value: progress.append(value))
        processor = make_processor(repository, FakeProvider(), RecordingSender())

        await processor.process(make_context(queue))

        assert progress == [10, 30, 50, 70, 90, 100]

    async def test_history_excludes_current_message(
        self, repository: SqlConversationRepository, queue: JobQueue
    ) -> None:
        provider = FakeProvider(reply="first reply")
        processor = make_processor(repository, provider, RecordingSender())

        await processor.process(make_context(queue, text="first"))
        provider.reply = "second reply"
        await processor.process(make_context(queue, text="second"))

        second_request = provider.requests[1]
        assert [(m.role, m.content) for m in second_request] == [
            ("system", "Be kind."),
            ("user", "first"),
            ("assistant", "first reply"),
            ("user", "second"),
        ]

    async def test_same_sender_reuses_conversation(
        self, repository: SqlConversationRepository, queue: JobQueue
    ) -> None:
        processor = make_processor(repository, FakeProvider(), RecordingSender())

        await processor.process(make_context(queue, text="one"))
        await processor.process(make_context(queue, text="two"))

        conversations = await repository.get_user_conversations("7", "telegram")
        assert len(conversations) == 1
        assert conversations[0].message_count == 4


class TestProcessFailure:
    """Tests for the failure path."""

    async def test_ai_failure_sends_apology_and_reraises(
        self, repository: SqlConversationRepository, queue: JobQueue
    ) -> None:
        sender = RecordingSender()
        provider = FakeProvider(error=ProviderError("hosted", "HTTP 500"))
        processor = make_processor(repository, provider, sender)

        with pytest.raises(AllProvidersFailedError):
            await processor.process(make_context(queue))

        assert sender.sent == [("telegram", "42", APOLOGY)]

    async def test_user_message_kept_after_ai_failure(
        self, repository: SqlConversationRepository, queue: JobQueue
    ) -> None:
        provider = FakeProvider(error=ProviderError("hosted", "HTTP 500"))
        processor = make_processor(repository, provider, RecordingSender())

        with pytest.raises(AllProvidersFailedError):
            await processor.process(make_context(queue))

        conversation = await repository.get_or_create_conversation(
            "telegram", "42", "7"
        )
        messages = await repository.get_conversation_messages(conversation.id)
        assert [m.role for m in messages] == [MessageRole.USER]

    async def test_apology_failure_does_not_mask_error(
        self, repository: SqlConversationRepository, queue: JobQueue
    ) -> None:
        sender = RecordingSender(fail=True)
        processor = make_processor(repository, FakeProvider(reply="Hi!"), sender)

        with pytest.raises(RuntimeError, match="platform down"):
            await processor.process(make_context(queue))

        # Reply attempt, then the apology attempt.
        assert [text for _, _, text in sender.sent] == ["Hi!", APOLOGY]

    async def test_invalid_payload_raises(
        self, repository: SqlConversationRepository, queue: JobQueue
    ) -> None:
        processor = make_processor(repository, FakeProvider(), RecordingSender())
        context = JobContext(Job(name=PROCESS_MESSAGE_JOB, data={"text": "x"}), queue)

        with pytest.raises(ValueError):
            await processor.process(context)
