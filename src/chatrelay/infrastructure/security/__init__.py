"""Webhook authentication."""

from chatrelay.infrastructure.security.signature_verifier import (
    SignatureVerifier,
    compute_slack_signature,
    compute_telegram_signature,
    is_valid_telegram_update,
)

__all__ = [
    "SignatureVerifier",
    "compute_slack_signature",
    "compute_telegram_signature",
    "is_valid_telegram_update",
]
