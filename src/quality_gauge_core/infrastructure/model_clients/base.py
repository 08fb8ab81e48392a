"""
Model client base class

Defines the abstract base class inherited by all model clients and the
helpers they share for splitting the message list and wrapping SDK errors.

Retrying is not done here: the evaluator owns the attempt budget, so a
client makes exactly one request per generate() call.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from quality_gauge_core.domain.errors import ProviderError
from quality_gauge_core.domain.value_objects import Message, ModelResponse
from quality_gauge_core.retry_policy import is_transient_error


class ModelClient(ABC):
    """Abstract base class for model clients"""

    model_name: str
    # True when the provider reports prompt-cache token counts
    supports_prompt_caching: bool = False

    @abstractmethod
    def generate(self, messages: Sequence[Message], *, timeout: float | None = None) -> ModelResponse:
        """
        Send a message list and retrieve the response

        Args:
            messages: System message first, then alternating user/assistant turns
            timeout: Request timeout in seconds (client default if None)

        Raises:
            ProviderError: On any SDK / network failure
        """
        pass


def split_system(messages: Sequence[Message]) -> tuple[Message | None, list[Message]]:
    """Separate the (optional) leading system message from the conversation turns"""
    if messages and messages[0].role == "system":
        return messages[0], list(messages[1:])
    return None, list(messages)


def provider_error(provider: str, exc: Exception) -> ProviderError:
    """Wrap an SDK exception (raise the result ``from exc``)"""
    return ProviderError(
        f"{provider} request failed: {exc}",
        provider=provider,
        transient=is_transient_error(exc),
    )
