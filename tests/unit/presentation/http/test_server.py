"""Tests for HTTPServer."""

import json
import time
from typing import Any

import aiohttp
import pytest
import structlog
from aiohttp.test_utils import TestClient

from chatrelay.config.models import (
    QueueConfig,
    ServerConfig,
    SlackConfig,
    TelegramConfig,
)
from chatrelay.domain.entities.chat import AIHealth
from chatrelay.domain.entities.job import PROCESS_MESSAGE_JOB
from chatrelay.infrastructure.job_queue import JobQueue
from chatrelay.infrastructure.security import (
    SignatureVerifier,
    compute_slack_signature,
)
from chatrelay.presentation.http.server import WEBHOOK_JOB_PRIORITY, HTTPServer

TELEGRAM_SECRET = "s3cret"
SLACK_SECRET = "slack-signing-secret"

TELEGRAM_UPDATE = {
    "update_id": 100,
    "message": {
        "message_id": 5,
        "from": {"id": 7, "is_bot": False, "first_name": "Ada", "username": "ada"},
        "chat": {"id": 42, "type": "private"},
        "date": 1700000000,
        "text": "hello",
    },
}

SLACK_EVENT = {
    "type": "event_callback",
    "team_id": "T1",
    "event": {
        "type": "message",
        "user": "U1",
        "text": "hi there",
        "channel": "C1",
        "ts": "1700000000.000100",
    },
}


class RecordingJobQueue(JobQueue):
    """JobQueue remembering every enqueue call."""

    def __init__(self, config: QueueConfig, logger: Any) -> None:
        super().__init__(config, logger)
        self.enqueued: list[tuple[str, dict[str, Any], int]] = []

    async def enqueue(
        self,
        name: str,
        data: dict[str, Any],
        priority: int = 0,
        delay: float = 0,
        attempts: int | None = None,
    ) -> str:
        job_id = await super().enqueue(name, data, priority, delay, attempts)
        self.enqueued.append((name, data, priority))
        return job_id


class FakeOrchestrator:
    """Reports a fixed health result."""

    def __init__(self, health: AIHealth | Exception) -> None:
        self.health = health

    async def is_healthy(self) -> AIHealth:
        if isinstance(self.health, Exception):
            raise self.health
        return self.health


@pytest.fixture
def logger() -> structlog.BoundLogger:
    return structlog.get_logger()


@pytest.fixture
def job_queue(logger: structlog.BoundLogger) -> RecordingJobQueue:
    return RecordingJobQueue(QueueConfig(), logger)


@pytest.fixture
def verifier(logger: structlog.BoundLogger) -> SignatureVerifier:
    return SignatureVerifier(
        TelegramConfig(bot_token="123:abc", webhook_secret=TELEGRAM_SECRET),
        SlackConfig(bot_token="xoxb-test", signing_secret=SLACK_SECRET),
        logger,
    )


def make_server(
    job_queue: JobQueue,
    verifier: SignatureVerifier,
    logger: structlog.BoundLogger,
    config: ServerConfig | None = None,
    health: AIHealth | Exception | None = None,
) -> HTTPServer:
    return HTTPServer(
        config=config or ServerConfig(host="127.0.0.1", port=8080),
        job_queue=job_queue,
        verifier=verifier,
        orchestrator=FakeOrchestrator(  # type: ignore[arg-type]
            health or AIHealth(primary=True, overall=True)
        ),
        logger=logger,
        configured_platforms=["telegram", "slack"],
    )


@pytest.fixture
async def client(
    job_queue: RecordingJobQueue,
    verifier: SignatureVerifier,
    logger: structlog.BoundLogger,
    aiohttp_client,
) -> TestClient:
    server = make_server(job_queue, verifier, logger)
    return await aiohttp_client(server.create_app())


def telegram_headers(secret: str = TELEGRAM_SECRET) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Telegram-Bot-Api-Secret-Token": secret,
    }


def slack_request(
    payload: dict[str, Any], timestamp: int | None = None
) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(payload).encode()
    ts = str(timestamp if timestamp is not None else int(time.time()))
    return body, {
        "Content-Type": "application/json",
        "X-Slack-Request-Timestamp": ts,
        "X-Slack-Signature": compute_slack_signature(SLACK_SECRET, ts, body),
    }


class TestHealthEndpoints:
    """Tests for /healthz and /webhook/health."""

    async def test_health_check(self, client: TestClient) -> None:
        response = await client.get("/healthz")

        assert response.status == 200
        assert response.content_type == "application/json"
        assert await response.json() == {"status": "ok"}

    async def test_webhook_health(self, client: TestClient) -> None:
        response = await client.get("/webhook/health")

        assert response.status == 200
        data = await response.json()
        assert data["status"] == "ok"
        assert data["endpoints"] == {
            "telegram": "/webhook/telegram",
            "slack": "/webhook/slack",
        }
        assert data["platforms"] == ["telegram", "slack"]
        assert data["ai_service"] == {
            "primary": True,
            "fallback": None,
            "overall": True,
        }

    async def test_webhook_health_failure(
        self,
        job_queue: RecordingJobQueue,
        verifier: SignatureVerifier,
        logger: structlog.BoundLogger,
        aiohttp_client,
    ) -> None:
        server = make_server(
            job_queue, verifier, logger, health=RuntimeError("health check crashed")
        )
        client = await aiohttp_client(server.create_app())

        response = await client.get("/webhook/health")

        assert response.status == 500
        assert (await response.json())["status"] == "error"


class TestTelegramWebhook:
    """Tests for POST /webhook/telegram."""

    async def test_text_message_enqueued(
        self, client: TestClient, job_queue: RecordingJobQueue
    ) -> None:
        response = await client.post(
            "/webhook/telegram", json=TELEGRAM_UPDATE, headers=telegram_headers()
        )

        assert response.status == 200
        assert await response.json() == {"ok": True}

        [(name, data, priority)] = job_queue.enqueued
        assert name == PROCESS_MESSAGE_JOB
        assert priority == WEBHOOK_JOB_PRIORITY
        assert data["platform"] == "telegram"
        assert data["conversationId"] == "42"
        assert data["userId"] == "7"
        assert data["messageData"] == {
            "text": "hello",
            "channelId": "42",
            "messageId": "5",
            "metadata": {
                "chat_type": "private",
                "from_username": "ada",
                "from_first_name": "Ada",
            },
        }
        assert "timestamp" in data

    async def test_wrong_secret_rejected(
        self, client: TestClient, job_queue: RecordingJobQueue
    ) -> None:
        response = await client.post(
            "/webhook/telegram",
            json=TELEGRAM_UPDATE,
            headers=telegram_headers(secret="guess"),
        )

        assert response.status == 401
        assert await response.json() == {"error": "Unauthorized"}
        assert job_queue.enqueued == []

    async def test_invalid_json(self, client: TestClient) -> None:
        response = await client.post(
            "/webhook/telegram", data="not json", headers=telegram_headers()
        )

        assert response.status == 400
        assert await response.json() == {"error": "Invalid webhook data"}

    async def test_missing_update_id(self, client: TestClient) -> None:
        response = await client.post(
            "/webhook/telegram",
            json={"message": TELEGRAM_UPDATE["message"]},
            headers=telegram_headers(),
        )

        assert response.status == 400

    async def test_non_text_update_acknowledged(
        self, client: TestClient, job_queue: RecordingJobQueue
    ) -> None:
        update = {
            "update_id": 101,
            "message": {
                "message_id": 6,
                "chat": {"id": 42, "type": "private"},
                "date": 1700000000,
            },
        }

        response = await client.post(
            "/webhook/telegram", json=update, headers=telegram_headers()
        )

        assert response.status == 200
        assert await response.json() == {"ok": True}
        assert job_queue.enqueued == []

    async def test_oversized_body_rejected(
        self,
        job_queue: RecordingJobQueue,
        verifier: SignatureVerifier,
        logger: structlog.BoundLogger,
        aiohttp_client,
    ) -> None:
        server = make_server(
            job_queue,
            verifier,
            logger,
            config=ServerConfig(host="127.0.0.1", port=8080, max_body_bytes=64),
        )
        client = await aiohttp_client(server.create_app())

        response = await client.post(
            "/webhook/telegram", json=TELEGRAM_UPDATE, headers=telegram_headers()
        )

        assert response.status == 413
        assert job_queue.enqueued == []

    async def test_closed_queue_returns_500(
        self, client: TestClient, job_queue: RecordingJobQueue
    ) -> None:
        await job_queue.close()

        response = await client.post(
            "/webhook/telegram", json=TELEGRAM_UPDATE, headers=telegram_headers()
        )

        assert response.status == 500
        assert await response.json() == {"error": "Internal server error"}


class TestSlackWebhook:
    """Tests for POST /webhook/slack."""

    async def test_url_verification_challenge(self, client: TestClient) -> None:
        body, headers = slack_request(
            {"type": "url_verification", "token": "t", "challenge": "abc123"}
        )

        response = await client.post("/webhook/slack", data=body, headers=headers)

        assert response.status == 200
        assert await response.json() == {"challenge": "abc123"}

    async def test_message_event_enqueued(
        self, client: TestClient, job_queue: RecordingJobQueue
    ) -> None:
        body, headers = slack_request(SLACK_EVENT)

        response = await client.post("/webhook/slack", data=body, headers=headers)

        assert response.status == 200
        assert await response.json() == {"ok": True}
        [(name, data, priority)] = job_queue.enqueued
        assert name == PROCESS_MESSAGE_JOB
        assert priority == WEBHOOK_JOB_PRIORITY
        assert data["platform"] == "slack"
        assert data["userId"] == "U1"
        assert data["conversationId"] == "C1"
        assert data["messageData"]["text"] == "hi there"
        assert data["messageData"]["messageId"] == "1700000000.000100"
        assert data["messageData"]["metadata"] == {"team": "T1"}

    async def test_bot_message_ignored(
        self, client: TestClient, job_queue: RecordingJobQueue
    ) -> None:
        payload = json.loads(json.dumps(SLACK_EVENT))
        payload["event"]["bot_id"] = "B1"
        body, headers = slack_request(payload)

        response = await client.post("/webhook/slack", data=body, headers=headers)

        assert response.status == 200
        assert job_queue.enqueued == []

    async def test_other_event_types_acknowledged(
        self, client: TestClient, job_queue: RecordingJobQueue
    ) -> None:
        body, headers = slack_request(
            {"type": "event_callback", "event": {"type": "reaction_added"}}
        )

        response = await client.post("/webhook/slack", data=body, headers=headers)

        assert response.status == 200
        assert job_queue.enqueued == []

    async def test_message_without_channel_rejected(
        self, client: TestClient, job_queue: RecordingJobQueue
    ) -> None:
        payload = json.loads(json.dumps(SLACK_EVENT))
        del payload["event"]["channel"]
        body, headers = slack_request(payload)

        response = await client.post("/webhook/slack", data=body, headers=headers)

        assert response.status == 400
        assert job_queue.enqueued == []

    async def test_stale_timestamp_rejected(
        self, client: TestClient, job_queue: RecordingJobQueue
    ) -> None:
        body, headers = slack_request(SLACK_EVENT, timestamp=int(time.time()) - 301)

        response = await client.post("/webhook/slack", data=body, headers=headers)

        assert response.status == 401
        assert job_queue.enqueued == []

    async def test_unsigned_request_rejected(self, client: TestClient) -> None:
        response = await client.post("/webhook/slack", json=SLACK_EVENT)

        assert response.status == 401


class TestServerLifecycle:
    """Tests for start/stop."""

    async def test_server_start_stop(
        self,
        job_queue: RecordingJobQueue,
        verifier: SignatureVerifier,
        logger: structlog.BoundLogger,
    ) -> None:
        server = make_server(
            job_queue, verifier, logger, config=ServerConfig(host="127.0.0.1", port=0)
        )

        await server.start()
        try:
            assert server.is_running

            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"http://127.0.0.1:{server.actual_port}/healthz"
                ) as response:
                    assert response.status == 200
        finally:
            await server.stop()

        assert not server.is_running

    def test_actual_port_before_start_raises(
        self,
        job_queue: RecordingJobQueue,
        verifier: SignatureVerifier,
        logger: structlog.BoundLogger,
    ) -> None:
        server = make_server(job_queue, verifier, logger)

        with pytest.raises(RuntimeError):
            _ = server.actual_port
