"""Webhook signature verification for Telegram and Slack."""

import hashlib
import hmac
import json
import time
from collections.abc import Callable, Mapping

import structlog

from chatrelay.config.models import SlackConfig, TelegramConfig
from chatrelay.domain.entities.base import Platform

TELEGRAM_SECRET_HEADER = "x-telegram-bot-api-secret-token"
TELEGRAM_SIGNATURE_HEADER = "x-telegram-signature"
SLACK_TIMESTAMP_HEADER = "x-slack-request-timestamp"
SLACK_SIGNATURE_HEADER = "x-slack-signature"
SLACK_SIGNATURE_VERSION = "v0"

# Slack requests older (or newer) than this are treated as replays
SLACK_MAX_SKEW_SECONDS = 300


class SignatureVerifier:
    """Checks that a webhook body was sent by the platform it claims.

    Verification never raises for a bad request; it returns False and logs
    the reason. All secret comparisons are constant-time.

    Args:
        telegram: Telegram secrets and unsigned-request policy.
        slack: Slack signing secret.
        logger: Structured logger.
        clock: Returns the current Unix time; injectable for tests.
    """

    def __init__(
        self,
        telegram: TelegramConfig,
        slack: SlackConfig,
        logger: structlog.stdlib.BoundLogger,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._telegram = telegram
        self._slack = slack
        self._logger = logger
        self._clock = clock

    def verify(
        self, platform: Platform | str, raw_body: bytes, headers: Mapping[str, str]
    ) -> bool:
        """Verify a webhook request.

        Args:
            platform: Claimed origin platform.
            raw_body: Body bytes exactly as received.
            headers: Request headers (any key case).

        Returns:
            True if the request is authentic.
        """
        normalized = {key.lower(): value for key, value in headers.items()}
        if platform == Platform.TELEGRAM:
            return self._verify_telegram(raw_body, normalized)
        if platform == Platform.SLACK:
            return self._verify_slack(raw_body, normalized)
        self._logger.error(
            "Signature verification for unknown platform", platform=platform
        )
        return False

    def _verify_telegram(self, raw_body: bytes, headers: dict[str, str]) -> bool:
        secret = self._telegram.webhook_secret
        if secret:
            received = headers.get(TELEGRAM_SECRET_HEADER)
            if received is None or not hmac.compare_digest(
                received.encode(), secret.encode()
            ):
                self._logger.warning("Invalid Telegram webhook secret token")
                return False
            return True

        signature = headers.get(TELEGRAM_SIGNATURE_HEADER)
        if not signature:
            if self._telegram.allow_unsigned:
                self._logger.warning(
                    "Telegram webhook accepted without signature verification"
                )
                return True
            self._logger.warning("Telegram webhook rejected: no signature provided")
            return False

        bot_token = self._telegram.bot_token
        if not bot_token:
            self._logger.error("Telegram bot token not configured")
            return False

        expected = compute_telegram_signature(bot_token, raw_body)
        received = signature.strip().lower()
        if not hmac.compare_digest(received.encode(), expected.encode()):
            self._logger.warning("Invalid Telegram bot token signature")
            return False
        return True

    def _verify_slack(self, raw_body: bytes, headers: dict[str, str]) -> bool:
        signing_secret = self._slack.signing_secret
        if not signing_secret:
            self._logger.error("Slack signing secret not configured")
            return False

        timestamp = headers.get(SLACK_TIMESTAMP_HEADER)
        signature = headers.get(SLACK_SIGNATURE_HEADER)
        if not timestamp or not signature:
            self._logger.warning("Missing Slack signature headers")
            return False

        try:
            sent_at = int(timestamp)
        except ValueError:
            self._logger.warning(
                "Malformed Slack request timestamp", timestamp=timestamp
            )
            return False

        if abs(self._clock() - sent_at) > SLACK_MAX_SKEW_SECONDS:
            self._logger.warning("Slack request timestamp outside replay window")
            return False

        expected = compute_slack_signature(signing_secret, timestamp, raw_body)
        if not hmac.compare_digest(signature.encode(), expected.encode()):
            self._logger.warning("Invalid Slack signature")
            return False
        return True


def compute_slack_signature(
    signing_secret: str, timestamp: str, raw_body: bytes
) -> str:
    """Return the ``v0=<hex>`` signature Slack sends for a body."""
    base = f"{SLACK_SIGNATURE_VERSION}:{timestamp}:".encode() + raw_body
    digest = hmac.new(signing_secret.encode(), base, hashlib.sha256).hexdigest()
    return f"{SLACK_SIGNATURE_VERSION}={digest}"


def compute_telegram_signature(bot_token: str, raw_body: bytes) -> str:
    """Return the hex HMAC-SHA256 of a body keyed by the bot token."""
    return hmac.new(bot_token.encode(), raw_body, hashlib.sha256).hexdigest()


def is_valid_telegram_update(raw_body: bytes) -> bool:
    """Check the minimal Telegram update shape: a numeric ``update_id``."""
    try:
        update = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        return False
    if not isinstance(update, dict):
        return False
    update_id = update.get("update_id")
    return isinstance(update_id, int) and not isinstance(update_id, bool)
