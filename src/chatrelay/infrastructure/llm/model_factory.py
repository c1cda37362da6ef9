"""Strands model factory."""

import os

from strands.models.litellm import LiteLLMModel
from strands.models.ollama import OllamaModel

from chatrelay.config.models import ProviderConfig
from chatrelay.infrastructure.llm.mock_model import MockModel

OLLAMA_PREFIX = "ollama/"

# Union type for all supported models
Model = LiteLLMModel | OllamaModel | MockModel


def create_model(config: ProviderConfig) -> Model:
    """Create a model for a provider configuration.

    Args:
        config: Provider configuration.

    Returns:
        MockModel if MOCK_LLM=true (or a failing one for MOCK_LLM=error),
        OllamaModel for self-hosted ``ollama/`` model ids, otherwise a
        LiteLLMModel talking to ``base_url`` when one is configured.
    """
    mock_llm = os.getenv("MOCK_LLM", "").lower()

    if mock_llm == "true":
        return MockModel()

    if mock_llm == "error":
        return MockModel(raise_error=True)

    if config.kind == "self_hosted" and config.model_id.startswith(OLLAMA_PREFIX):
        return _create_ollama_model(config)

    client_args: dict[str, str] = {}
    if config.api_key:
        client_args["api_key"] = config.api_key
    if config.base_url:
        client_args["api_base"] = config.base_url

    return LiteLLMModel(
        model_id=config.model_id,
        params=config.params,
        client_args=client_args,
    )


def _create_ollama_model(config: ProviderConfig) -> OllamaModel:
    """Create an OllamaModel from a self-hosted provider configuration.

    Args:
        config: Provider configuration with model_id starting with "ollama/".

    Returns:
        Configured OllamaModel instance.
    """
    model_id = config.model_id.removeprefix(OLLAMA_PREFIX)
    return OllamaModel(host=config.base_url, model_id=model_id, **config.params)
