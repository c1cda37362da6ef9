"""LLM provider infrastructure."""

from chatrelay.infrastructure.llm.mock_model import MockModel
from chatrelay.infrastructure.llm.model_factory import create_model
from chatrelay.infrastructure.llm.providers import (
    HostedProvider,
    SelfHostedProvider,
    StrandsProvider,
    create_provider,
)

__all__ = [
    "HostedProvider",
    "MockModel",
    "SelfHostedProvider",
    "StrandsProvider",
    "create_model",
    "create_provider",
]
