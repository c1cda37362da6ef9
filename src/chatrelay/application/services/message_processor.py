"""Queue job handler that turns an inbound message into a delivered reply."""

from typing import Any, Protocol

from structlog.stdlib import BoundLogger

from chatrelay.application.services.ai_orchestrator import AIOrchestrator
from chatrelay.config.models import ProcessorConfig
from chatrelay.domain.context_window import format_messages_for_ai
from chatrelay.domain.entities.base import Platform
from chatrelay.domain.entities.job import MessageJob
from chatrelay.domain.entities.message import MessageOptions
from chatrelay.domain.repositories import ConversationRepository
from chatrelay.infrastructure.job_queue import JobContext


class MessageSender(Protocol):
    """Outbound side of a chat platform."""

    async def send(self, platform: Platform | str, channel_id: str, text: str) -> None:
        """Deliver text to a platform channel."""
        ...


class MessageProcessor:
    """Handles ``process-message`` jobs.

    Each job resolves the conversation, stores the user message, asks the
    AI orchestrator for a reply using the token-bounded history, stores the
    reply and delivers it. Any failure sends an apology to the user and is
    re-raised so the queue retries the job.
    """

    def __init__(
        self,
        repository: ConversationRepository,
        orchestrator: AIOrchestrator,
        sender: MessageSender,
        config: ProcessorConfig,
        logger: BoundLogger,
    ) -> None:
        """Initialize the processor.

        Args:
            repository: Conversation store.
            orchestrator: AI orchestrator producing replies.
            sender: Delivers replies to platforms.
            config: Context budget and apology text.
            logger: Logger instance.
        """
        self._repository = repository
        self._orchestrator = orchestrator
        self._sender = sender
        self._config = config
        self._logger = logger

    async def process(self, job: JobContext) -> dict[str, Any]:
        """Process one job attempt.

        Args:
            job: Queue context carrying a ``MessageJob`` payload.

        Returns:
            ``{"success": True, "response": <reply text>}``.

        Raises:
            Exception: Whatever failed, after the apology was attempted.
        """
        payload = MessageJob.model_validate(job.data)
        message = payload.message_data
        log = self._logger.bind(
            job_id=job.id,
            platform=payload.platform.value,
            channel_id=message.channel_id,
            user_id=payload.user_id,
            attempt=job.attempts_made + 1,
        )
        log.info("Processing message job")

        try:
            await job.progress(10)
            conversation, user_message = await self._repository.add_user_message(
                payload.platform.value,
                message.channel_id,
                payload.user_id,
                message.text,
                platform_message_id=message.message_id,
                platform_data=message.metadata,
            )
            log = log.bind(conversation_id=conversation.id)
            await job.progress(30)

            # The new message is passed separately as the user turn.
            history = await self._repository.get_conversation_history(
                conversation.id, self._config.context_max_tokens
            )
            prior = [m for m in history if m.id != user_message.id]
            await job.progress(50)

            response = await self._orchestrator.process_message(
                message.text, format_messages_for_ai(prior)
            )
            await job.progress(70)

            await self._repository.add_assistant_message(
                conversation.id,
                response.content,
                MessageOptions(
                    token_count=response.usage.total_tokens if response.usage else None,
                    ai_provider=response.provider,
                    ai_model=response.model,
                ),
            )
            await job.progress(90)

            await self._sender.send(
                payload.platform, message.channel_id, response.content
            )
            await job.progress(100)
        except Exception as e:
            log.error("Message processing failed", error=str(e), exc_info=True)
            await self._send_apology(payload, log)
            raise

        log.info(
            "Message processed",
            history_size=len(prior),
            provider=response.provider,
            response_length=len(response.content),
        )
        return {"success": True, "response": response.content}

    async def _send_apology(self, payload: MessageJob, log: BoundLogger) -> None:
        try:
            await self._sender.send(
                payload.platform,
                payload.message_data.channel_id,
                self._config.apology_text,
            )
        except Exception as e:
            log.error("Failed to send apology message", error=str(e))
