"""
Anthropic Claude model client
"""

import os
import time
from typing import Sequence

from anthropic import Anthropic, APIError

from quality_gauge_core.domain.value_objects import Message, ModelResponse
from quality_gauge_core.infrastructure.model_clients.base import ModelClient, provider_error, split_system


class ClaudeClient(ModelClient):
    """Claude client using the Anthropic API"""

    supports_prompt_caching = True

    def __init__(
        self,
        model_name: str,
        api_key: str | None = None,
        timeout_seconds: float = 60,
        max_tokens: int = 2048,
    ):
        """
        Args:
            model_name: Model name (e.g. claude-haiku-4-5-20251001)
            api_key: Anthropic API key (falls back to environment variable if not specified)
            timeout_seconds: Default request timeout in seconds (default: 60)
            max_tokens: Maximum number of output tokens (default: 2048)
        """
        self.model_name = model_name
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens

        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY is not set")

        # SDK-level retries are disabled; the evaluator decides when to retry
        self.client = Anthropic(api_key=self.api_key, max_retries=0)

    def _build_request(self, messages: Sequence[Message]) -> dict:
        system, turns = split_system(messages)
        request = {
            "model": self.model_name,
            "max_tokens": self.max_tokens,
            "temperature": 0.0,
            "messages": [{"role": m.role, "content": m.content} for m in turns],
        }
        if system is not None:
            block = {"type": "text", "text": system.content}
            if system.cache_control:
                block["cache_control"] = {"type": "ephemeral"}
            request["system"] = [block]
        return request

    def generate(self, messages: Sequence[Message], *, timeout: float | None = None) -> ModelResponse:
        """
        Send a message list and retrieve the response

        Args:
            messages: Message list (system message becomes the system block)
            timeout: Request timeout in seconds

        Returns:
            ModelResponse: The model's response, including prompt-cache token counts

        Raises:
            ProviderError: If the API call fails
        """
        start_time = time.time()
        try:
            response = self.client.messages.create(
                **self._build_request(messages),
                timeout=timeout if timeout is not None else self.timeout_seconds,
            )
        except APIError as e:
            raise provider_error("anthropic", e) from e
        end_time = time.time()

        latency_ms = int((end_time - start_time) * 1000)
        output = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        ).strip()

        # Retrieve token usage
        usage = response.usage
        return ModelResponse(
            output=output,
            latency_ms=latency_ms,
            model_name=self.model_name,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
            cache_read_tokens=getattr(usage, "cache_read_input_tokens", 0) or 0,
            cache_creation_tokens=getattr(usage, "cache_creation_input_tokens", 0) or 0,
        )
