"""Outbound delivery of replies to chat platforms."""

import asyncio
from typing import Any

import aiohttp
from structlog.stdlib import BoundLogger

from chatrelay.config.models import SlackConfig, TelegramConfig
from chatrelay.domain.entities.base import Platform

TELEGRAM_API_BASE = "https://api.telegram.org"
SLACK_API_BASE = "https://slack.com/api"
SEND_TIMEOUT = 10.0


class UnsupportedPlatformError(ValueError):
    """Raised when asked to deliver to a platform the relay does not know."""

    def __init__(self, platform: str) -> None:
        super().__init__(f"Unsupported platform: {platform}")
        self.platform = platform


class PlatformDispatcher:
    """Sends text messages through each platform's send API.

    Delivery problems (missing credentials, transport errors, API errors)
    are logged and never raised, so a failed send cannot crash a worker.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        telegram: TelegramConfig,
        slack: SlackConfig,
        logger: BoundLogger,
        telegram_api_base: str = TELEGRAM_API_BASE,
        slack_api_base: str = SLACK_API_BASE,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            session: Shared HTTP client session.
            telegram: Telegram credentials.
            slack: Slack credentials.
            logger: Logger instance.
            telegram_api_base: Telegram Bot API root.
            slack_api_base: Slack Web API root.
        """
        self._session = session
        self._telegram = telegram
        self._slack = slack
        self._logger = logger
        self._telegram_api_base = telegram_api_base.rstrip("/")
        self._slack_api_base = slack_api_base.rstrip("/")

    def configured_platforms(self) -> list[str]:
        """Platforms that have send credentials."""
        platforms = []
        if self._telegram.bot_token:
            platforms.append(Platform.TELEGRAM.value)
        if self._slack.bot_token:
            platforms.append(Platform.SLACK.value)
        return platforms

    async def send(
        self, platform: Platform | str, channel_id: str, text: str
    ) -> None:
        """Deliver ``text`` to a channel.

        Raises:
            UnsupportedPlatformError: If the platform is unknown.
        """
        try:
            target = Platform(platform)
        except ValueError as e:
            raise UnsupportedPlatformError(str(platform)) from e

        if target is Platform.TELEGRAM:
            await self._send_telegram(channel_id, text)
        else:
            await self._send_slack(channel_id, text)

    async def _send_telegram(self, chat_id: str, text: str) -> None:
        token = self._telegram.bot_token
        if not token:
            self._logger.error("Telegram bot token not configured", chat_id=chat_id)
            return

        url = f"{self._telegram_api_base}/bot{token}/sendMessage"
        payload = {
            "chat_id": int(chat_id) if _is_integer(chat_id) else chat_id,
            "text": text,
            "parse_mode": "Markdown",
        }
        body = await self._post(Platform.TELEGRAM, url, payload, headers={})
        if body is not None and not body.get("ok", False):
            self._logger.error(
                "Telegram rejected message",
                chat_id=chat_id,
                description=body.get("description"),
            )
            return
        if body is not None:
            self._logger.info("Telegram message sent", chat_id=chat_id)

    async def _send_slack(self, channel: str, text: str) -> None:
        token = self._slack.bot_token
        if not token:
            self._logger.error("Slack bot token not configured", channel=channel)
            return

        url = f"{self._slack_api_base}/chat.postMessage"
        payload = {"channel": channel, "text": text}
        headers = {"Authorization": f"Bearer {token}"}
        body = await self._post(Platform.SLACK, url, payload, headers=headers)
        if body is not None and not body.get("ok", False):
            self._logger.error(
                "Slack rejected message", channel=channel, error=body.get("error")
            )
            return
        if body is not None:
            self._logger.info("Slack message sent", channel=channel)

    async def _post(
        self,
        platform: Platform,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any] | None:
        """POST JSON and return the decoded body, or None on any failure."""
        timeout = aiohttp.ClientTimeout(total=SEND_TIMEOUT)
        try:
            async with self._session.post(
                url, json=payload, headers=headers, timeout=timeout
            ) as response:
                if response.status >= 400:
                    self._logger.error(
                        "Platform send failed",
                        platform=platform.value,
                        status=response.status,
                        body=await response.text(),
                    )
                    return None
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self._logger.error(
                "Platform send failed", platform=platform.value, error=str(e)
            )
            return None

        if not isinstance(body, dict):
            self._logger.error(
                "Unexpected platform response", platform=platform.value
            )
            return None
        return body


def _is_integer(value: str) -> bool:
    return value.lstrip("-").isdigit()
