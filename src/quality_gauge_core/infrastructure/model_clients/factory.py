"""
Model client factory

Creates the appropriate client instance based on the model name.
"""

from __future__ import annotations

from quality_gauge_core.domain.entities import ModelConfig
from quality_gauge_core.evaluator_config import EvaluatorConfig, load_config
from quality_gauge_core.infrastructure.model_clients.base import ModelClient
from quality_gauge_core.infrastructure.model_clients.claude import ClaudeClient
from quality_gauge_core.infrastructure.model_clients.openai_compatible import (
    LMStudioClient,
    OpenAICompatibleClient,
)
from quality_gauge_core.infrastructure.model_clients.vertex_ai import VertexAIClient


def create_client(model_name: str, config: EvaluatorConfig | None = None) -> ModelClient:
    """
    Create the appropriate client based on the model name

    Args:
        model_name: Model name (lmstudio/*, openai/*, claude*, otherwise Gemini)
        config: EvaluatorConfig (loads from env if not provided)

    Returns:
        ModelClient: The appropriate client instance
    """
    if config is None:
        config = load_config()

    timeout = config.request_timeout_seconds

    if model_name.startswith("lmstudio/"):
        return LMStudioClient(
            model_name,
            base_url=config.lmstudio.base_url,
            api_key=config.lmstudio.api_key,
            timeout_seconds=timeout,
        )
    elif model_name.startswith("openai/"):
        return OpenAICompatibleClient(model_name, timeout_seconds=timeout)
    elif model_name.startswith("claude"):
        return ClaudeClient(model_name, timeout_seconds=timeout)
    else:
        return VertexAIClient(model_name, timeout_seconds=timeout)


def create_model_config(model_name: str, config: EvaluatorConfig | None = None) -> ModelConfig:
    """
    Create a client and wrap it with its caching capability

    Prompt caching is enabled when the provider supports it and
    ``config.prompt_caching`` is on.
    """
    if config is None:
        config = load_config()
    client = create_client(model_name, config)
    return ModelConfig(
        client=client,
        prompt_caching=config.prompt_caching and client.supports_prompt_caching,
    )
