"""
Vertex AI (Google GenAI SDK) model client
"""

import os
import time
from typing import Sequence

from google import genai
from google.api_core import exceptions as google_exceptions
from google.genai import errors as genai_errors
from google.genai.types import Content, GenerateContentConfig, HttpOptions, Part

from quality_gauge_core.domain.value_objects import Message, ModelResponse
from quality_gauge_core.infrastructure.model_clients.base import ModelClient, provider_error, split_system


class VertexAIClient(ModelClient):
    """Model client using Google GenAI SDK (via Vertex AI)"""

    # Gemini caches long prefixes implicitly and reports the cached token count
    supports_prompt_caching = True

    def __init__(
        self,
        model_name: str,
        project_id: str | None = None,
        location: str | None = None,
        timeout_seconds: float = 60,
    ):
        """
        Args:
            model_name: Model name (e.g. gemini-2.5-flash)
            project_id: GCP project ID (falls back to environment variable if not specified)
            location: Region (falls back to environment variable, then "global")
            timeout_seconds: Default request timeout in seconds (default: 60)
        """
        self.model_name = model_name
        self.project_id = project_id or os.environ.get("GCP_PROJECT_ID")
        self.location = location or os.environ.get("GCP_LOCATION", "global")
        self.timeout_seconds = timeout_seconds

        if not self.project_id:
            raise ValueError("GCP_PROJECT_ID is not set")

        # Initialize Google GenAI client (via Vertex AI)
        # Timeout is configured via HttpOptions (milliseconds)
        self.client = genai.Client(
            vertexai=True,
            project=self.project_id,
            location=self.location,
            http_options=HttpOptions(timeout=int(timeout_seconds * 1000)),
        )

    def _build_request(self, messages: Sequence[Message], timeout: float | None):
        system, turns = split_system(messages)
        contents = [
            Content(role="model" if m.role == "assistant" else "user", parts=[Part(text=m.content)])
            for m in turns
        ]
        config = GenerateContentConfig(
            # temperature=0 for reproducibility
            temperature=0.0,
            system_instruction=system.content if system is not None else None,
            http_options=HttpOptions(timeout=int(timeout * 1000)) if timeout is not None else None,
        )
        return contents, config

    def generate(self, messages: Sequence[Message], *, timeout: float | None = None) -> ModelResponse:
        """
        Send a message list and retrieve the response

        Args:
            messages: Message list (system message becomes the system instruction)
            timeout: Request timeout in seconds

        Returns:
            ModelResponse: The model's response

        Raises:
            ProviderError: If the API call fails
        """
        contents, config = self._build_request(messages, timeout)
        start_time = time.time()
        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=contents,
                config=config,
            )
        except (genai_errors.APIError, google_exceptions.GoogleAPIError) as e:
            raise provider_error("vertex_ai", e) from e
        end_time = time.time()

        latency_ms = int((end_time - start_time) * 1000)

        # Retrieve token usage
        input_tokens = 0
        output_tokens = 0
        cached_tokens = 0
        if hasattr(response, "usage_metadata") and response.usage_metadata:
            input_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
            output_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0
            cached_tokens = getattr(response.usage_metadata, "cached_content_token_count", 0) or 0
            # prompt_token_count includes cached content
            input_tokens = max(0, input_tokens - cached_tokens)

        return ModelResponse(
            output=(response.text or "").strip(),
            latency_ms=latency_ms,
            model_name=self.model_name,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_read_tokens=cached_tokens,
        )
