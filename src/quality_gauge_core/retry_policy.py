"""
Retry Policy

Bounded exponential backoff for transient evaluation failures (unparseable
responses, provider errors). Independent of circuit breaker bookkeeping:
every retryable failure consumes one attempt from the same budget.
"""

from __future__ import annotations

import re
import threading
import time
from typing import Callable, Iterator

from quality_gauge_core.evaluator_config import RetryConfig

# Error messages that indicate a temporary provider problem
_TRANSIENT_PATTERNS = re.compile(
    r"rate limit|too many requests|\b429\b|\b500\b|\b502\b|\b503\b|\b504\b|"
    r"overloaded|timeout|timed out|econnreset|enotfound|connection (?:error|reset|refused)",
    re.IGNORECASE,
)
_TRANSIENT_STATUS_CODES = (408, 409, 429, 500, 502, 503, 504, 529)


def is_transient_error(error: object) -> bool:
    """
    Heuristic to determine whether a provider error is worth retrying.

    Checks the HTTP status code when the exception carries one
    (``status_code``, ``code`` or ``response.status_code``), then falls back
    to matching the message.

    Args:
        error: Exception raised by an SDK call (any other value returns False)

    Returns:
        True for rate limits, 5xx responses, timeouts and connection errors
    """
    if not isinstance(error, BaseException):
        return False
    status = getattr(error, "status_code", None)
    if not isinstance(status, int):
        status = getattr(error, "code", None)
    if not isinstance(status, int):
        status = getattr(getattr(error, "response", None), "status_code", None)
    if isinstance(status, int):
        return status in _TRANSIENT_STATUS_CODES
    return bool(_TRANSIENT_PATTERNS.search(str(error)))


class RetryPolicy:
    """Computes backoff delays and the attempt budget"""

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            config: Retry configuration (defaults if not provided)
            sleep: Sleep function used when no cancel event is given (replaceable in tests)
        """
        self.config = config or RetryConfig()
        if self.config.max_retries < 1:
            raise ValueError("max_retries must be at least 1.")
        if self.config.initial_delay_seconds < 0 or self.config.max_delay_seconds < 0:
            raise ValueError("Retry delays must be non-negative.")
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return self.config.max_retries

    def delay_for(self, attempt: int) -> float:
        """
        Backoff before retry number ``attempt`` (0-based)

        delay = min(initial_delay * multiplier ** attempt, max_delay)
        """
        if attempt < 0:
            raise ValueError("attempt must be non-negative.")
        delay = self.config.initial_delay_seconds * (self.config.multiplier ** attempt)
        return min(delay, self.config.max_delay_seconds)

    def should_retry(self, attempts_made: int) -> bool:
        """True while fewer than max_retries attempts have been made"""
        return attempts_made < self.config.max_retries

    def attempts(self) -> Iterator[int]:
        """Yield 0-based attempt numbers for as long as the budget allows"""
        attempt = 0
        while self.should_retry(attempt):
            yield attempt
            attempt += 1

    def wait(self, delay: float, cancel_event: threading.Event | None = None) -> bool:
        """
        Sleep for ``delay`` seconds.

        Returns:
            False if the cancel event was set while waiting, True otherwise
        """
        if delay <= 0:
            return not (cancel_event is not None and cancel_event.is_set())
        if cancel_event is not None:
            return not cancel_event.wait(delay)
        self._sleep(delay)
        return True
