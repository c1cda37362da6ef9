"""HTTP server receiving chat platform webhooks."""

import asyncio
from collections.abc import Sequence

import structlog
from aiohttp import web
from pydantic import ValidationError

from chatrelay.application.services.ai_orchestrator import AIOrchestrator
from chatrelay.config.models import ServerConfig
from chatrelay.domain.entities.base import Platform
from chatrelay.domain.entities.job import PROCESS_MESSAGE_JOB, MessageData, MessageJob
from chatrelay.infrastructure.job_queue import JobQueue
from chatrelay.infrastructure.security import (
    SignatureVerifier,
    is_valid_telegram_update,
)
from chatrelay.presentation.http.schemas import SlackEnvelope, TelegramUpdate

# Jobs from webhooks share one normal priority
WEBHOOK_JOB_PRIORITY = 10


class _BodyError(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class HTTPServer:
    """HTTP server for platform webhooks and health checks.

    This server provides endpoints for:
    - POST /webhook/telegram: Telegram Bot API updates
    - POST /webhook/slack: Slack Events API requests
    - GET /webhook/health: AI provider health and configured platforms
    - GET /healthz: Kubernetes liveness check

    Webhooks are authenticated, minimally validated, enqueued as
    ``process-message`` jobs and acknowledged without waiting for the reply.

    Args:
        config: Server configuration.
        job_queue: Queue receiving accepted messages.
        verifier: Webhook signature verifier.
        orchestrator: AI orchestrator, used for health reporting.
        logger: Structured logger for logging.
        configured_platforms: Platforms with outbound credentials.
    """

    def __init__(
        self,
        config: ServerConfig,
        job_queue: JobQueue,
        verifier: SignatureVerifier,
        orchestrator: AIOrchestrator,
        logger: structlog.stdlib.BoundLogger,
        configured_platforms: Sequence[str] = (),
    ) -> None:
        self.config = config
        self._job_queue = job_queue
        self._verifier = verifier
        self._orchestrator = orchestrator
        self._logger = logger
        self._configured_platforms = list(configured_platforms)
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def is_running(self) -> bool:
        """Return True if the server is running."""
        return self._site is not None

    @property
    def actual_port(self) -> int:
        """Return the actual port the server is listening on.

        This is useful when port 0 is configured to get a random port.

        Raises:
            RuntimeError: If the server is not running.
        """
        if self._site is None:
            raise RuntimeError("Server is not running")
        server = getattr(self._site, "_server", None)
        if server is None:
            raise RuntimeError("Server is not running")
        sockets = getattr(server, "sockets", None)
        if sockets:
            return sockets[0].getsockname()[1]
        raise RuntimeError("No sockets available")

    def create_app(self) -> web.Application:
        """Create and return the aiohttp Application.

        This method is exposed for testing purposes.

        Returns:
            Configured aiohttp Application.
        """
        app = web.Application(client_max_size=self.config.max_body_bytes)
        app.router.add_get("/healthz", self._handle_health_check)
        app.router.add_get("/webhook/health", self._handle_webhook_health)
        app.router.add_post("/webhook/telegram", self._handle_telegram)
        app.router.add_post("/webhook/slack", self._handle_slack)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()
        self._logger.info(
            "HTTP server started",
            host=self.config.host,
            port=self.actual_port,
        )

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            self._app = None
            self._logger.info("HTTP server stopped")

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        """Handle GET /healthz requests."""
        return web.json_response({"status": "ok"})

    async def _handle_webhook_health(self, request: web.Request) -> web.Response:
        """Handle GET /webhook/health requests.

        Returns:
            Webhook endpoints, configured platforms and AI provider health.
        """
        try:
            health = await self._orchestrator.is_healthy()
        except Exception as e:
            self._logger.error("AI health check failed", error=str(e))
            return web.json_response(
                {"status": "error", "error": "Failed to check AI service health"},
                status=500,
            )
        return web.json_response(
            {
                "status": "ok",
                "endpoints": {
                    "telegram": "/webhook/telegram",
                    "slack": "/webhook/slack",
                },
                "platforms": self._configured_platforms,
                "ai_service": health.model_dump(),
            }
        )

    async def _read_body(self, request: web.Request) -> bytes:
        """Read the raw body within the configured size and time limits.

        Raises:
            _BodyError: If the body is too large or too slow to arrive.
        """
        length = request.content_length
        if length is not None and length > self.config.max_body_bytes:
            raise _BodyError(413, "Request body too large")
        try:
            return await asyncio.wait_for(
                request.read(), timeout=self.config.body_read_timeout
            )
        except web.HTTPRequestEntityTooLarge as e:
            raise _BodyError(413, "Request body too large") from e
        except asyncio.TimeoutError as e:
            raise _BodyError(408, "Request body read timed out") from e

    async def _handle_telegram(self, request: web.Request) -> web.Response:
        """Handle POST /webhook/telegram requests.

        Returns:
            ``{"ok": true}`` once the update is accepted, or an error response.
        """
        try:
            raw_body = await self._read_body(request)
        except _BodyError as e:
            self._logger.warning("Rejected Telegram webhook body", error=e.message)
            return web.json_response({"error": e.message}, status=e.status)

        if not self._verifier.verify(Platform.TELEGRAM, raw_body, request.headers):
            return web.json_response({"error": "Unauthorized"}, status=401)

        if not is_valid_telegram_update(raw_body):
            self._logger.warning("Invalid Telegram webhook data structure")
            return web.json_response({"error": "Invalid webhook data"}, status=400)

        try:
            update = TelegramUpdate.model_validate_json(raw_body)
        except ValidationError as e:
            self._logger.warning("Invalid Telegram webhook data", error=str(e))
            return web.json_response({"error": "Invalid webhook data"}, status=400)

        message = update.message
        self._logger.info(
            "Telegram webhook received",
            update_id=update.update_id,
            message_id=message.message_id if message else None,
            chat_type=message.chat.type if message else None,
        )

        if message is None or not message.text:
            return web.json_response({"ok": True})

        sender = message.from_
        channel_id = str(message.chat.id)
        job = MessageJob(
            platform=Platform.TELEGRAM,
            message_data=MessageData(
                text=message.text,
                channel_id=channel_id,
                message_id=str(message.message_id),
                metadata={
                    "chat_type": message.chat.type,
                    "from_username": sender.username if sender else None,
                    "from_first_name": sender.first_name if sender else None,
                },
            ),
            conversation_id=channel_id,
            user_id=str(sender.id) if sender else "unknown",
        )
        return await self._enqueue(job)

    async def _handle_slack(self, request: web.Request) -> web.Response:
        """Handle POST /webhook/slack requests.

        Returns:
            The challenge for ``url_verification``, otherwise ``{"ok": true}``
            once the event is accepted, or an error response.
        """
        try:
            raw_body = await self._read_body(request)
        except _BodyError as e:
            self._logger.warning("Rejected Slack webhook body", error=e.message)
            return web.json_response({"error": e.message}, status=e.status)

        if not self._verifier.verify(Platform.SLACK, raw_body, request.headers):
            return web.json_response({"error": "Unauthorized"}, status=401)

        try:
            envelope = SlackEnvelope.model_validate_json(raw_body)
        except ValidationError as e:
            self._logger.warning("Invalid Slack webhook data", error=str(e))
            return web.json_response({"error": "Invalid webhook data"}, status=400)

        if envelope.type == "url_verification":
            self._logger.info("Slack URL verification challenge received")
            return web.json_response({"challenge": envelope.challenge})

        event = envelope.event
        if envelope.type != "event_callback" or event is None:
            return web.json_response({"ok": True})

        self._logger.info(
            "Slack webhook received",
            event_type=event.type,
            channel=event.channel,
            user=event.user,
        )

        if event.is_from_bot:
            self._logger.debug("Ignoring Slack bot message", channel=event.channel)
            return web.json_response({"ok": True})

        if event.type != "message" or not event.user or not event.text:
            return web.json_response({"ok": True})

        if not event.channel:
            return web.json_response({"error": "Invalid webhook data"}, status=400)

        job = MessageJob(
            platform=Platform.SLACK,
            message_data=MessageData(
                text=event.text,
                channel_id=event.channel,
                message_id=event.ts,
                metadata={"team": envelope.team_id},
            ),
            conversation_id=event.channel,
            user_id=event.user,
        )
        return await self._enqueue(job)

    async def _enqueue(self, job: MessageJob) -> web.Response:
        try:
            job_id = await self._job_queue.enqueue(
                PROCESS_MESSAGE_JOB,
                job.to_payload(),
                priority=WEBHOOK_JOB_PRIORITY,
            )
        except Exception as e:
            self._logger.error(
                "Failed to enqueue message", platform=job.platform.value, error=str(e)
            )
            return web.json_response({"error": "Internal server error"}, status=500)

        self._logger.info(
            "Message queued",
            job_id=job_id,
            platform=job.platform.value,
            channel_id=job.message_data.channel_id,
        )
        return web.json_response({"ok": True})
