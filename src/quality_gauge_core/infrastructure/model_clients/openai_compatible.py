"""
OpenAI-compatible model clients (OpenAI API, LMStudio)
"""

import os
import time
from typing import Sequence

import openai
from openai import OpenAI

from quality_gauge_core.domain.value_objects import Message, ModelResponse
from quality_gauge_core.infrastructure.model_clients.base import ModelClient, provider_error


class OpenAICompatibleClient(ModelClient):
    """Client for any endpoint speaking the OpenAI chat completions API"""

    supports_prompt_caching = True
    prefix = "openai/"
    provider = "openai"

    def __init__(
        self,
        model_name: str,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float = 60,
        max_tokens: int = 2048,
    ):
        """
        Args:
            model_name: Model name (e.g. openai/gpt-4o-mini)
            base_url: API endpoint (SDK default if not specified)
            api_key: API key (falls back to OPENAI_API_KEY env var if not specified)
            timeout_seconds: Default request timeout in seconds (default: 60)
            max_tokens: Maximum number of tokens (default: 2048)
        """
        self.model_name = model_name
        # Strip the provider prefix to get the model name for the API
        self.api_model_name = model_name.removeprefix(self.prefix)
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.base_url = base_url

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY is not set")

        self.client = OpenAI(base_url=base_url, api_key=api_key, max_retries=0)

    def generate(self, messages: Sequence[Message], *, timeout: float | None = None) -> ModelResponse:
        """
        Send a message list and retrieve the response

        Args:
            messages: Message list (roles map directly onto chat roles)
            timeout: Request timeout in seconds

        Returns:
            ModelResponse: The model's response

        Raises:
            ProviderError: If the API call fails
        """
        start_time = time.time()
        try:
            response = self.client.chat.completions.create(
                model=self.api_model_name,
                messages=[{"role": m.role, "content": m.content} for m in messages],
                temperature=0.0,
                max_tokens=self.max_tokens,
                timeout=timeout if timeout is not None else self.timeout_seconds,
            )
        except openai.APIError as e:
            raise provider_error(self.provider, e) from e
        end_time = time.time()

        latency_ms = int((end_time - start_time) * 1000)
        output = (response.choices[0].message.content or "").strip()

        # Retrieve token usage
        input_tokens = 0
        output_tokens = 0
        cached_tokens = 0
        if response.usage:
            input_tokens = response.usage.prompt_tokens or 0
            output_tokens = response.usage.completion_tokens or 0
            details = getattr(response.usage, "prompt_tokens_details", None)
            if details is not None:
                cached_tokens = getattr(details, "cached_tokens", 0) or 0

        # prompt_tokens includes cached tokens; input_tokens counts uncached input only
        input_tokens = max(0, input_tokens - cached_tokens)

        return ModelResponse(
            output=output,
            latency_ms=latency_ms,
            model_name=self.model_name,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_read_tokens=cached_tokens,
        )


class LMStudioClient(OpenAICompatibleClient):
    """Client using LMStudio (OpenAI-compatible local server)"""

    supports_prompt_caching = False
    prefix = "lmstudio/"
    provider = "lmstudio"

    def __init__(
        self,
        model_name: str,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float = 60,
        max_tokens: int = 2048,
    ):
        """
        Args:
            model_name: Model name (e.g. lmstudio/qwen2.5-7b)
            base_url: LMStudio API endpoint (falls back to LMSTUDIO_BASE_URL env var if not specified)
            api_key: API key (falls back to LMSTUDIO_API_KEY env var if not specified; usually not required for LMStudio)
            timeout_seconds: Default request timeout in seconds (default: 60)
            max_tokens: Maximum number of tokens (default: 2048)
        """
        # Configuration priority: argument > environment variable > default value
        base_url = base_url or os.environ.get("LMSTUDIO_BASE_URL", "http://localhost:1234/v1")
        api_key = api_key or os.environ.get("LMSTUDIO_API_KEY", "lm-studio")
        super().__init__(
            model_name,
            base_url=base_url,
            api_key=api_key,
            timeout_seconds=timeout_seconds,
            max_tokens=max_tokens,
        )
