"""
Circuit Breaker

Stops calls to a grader provider that keeps failing, so an outage does not
multiply cost and latency. One instance is shared by every evaluator call
for the same provider/model in the process.

States:
- closed: consecutive failures below the threshold, calls proceed
- open: threshold reached and the cool-down has not elapsed, calls fail fast
- half-open: threshold reached but the cool-down elapsed, calls proceed;
  a success closes the circuit, a failure re-opens it for another cool-down
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from quality_gauge_core.evaluator_config import CircuitBreakerConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CircuitState:
    """Snapshot of the breaker state"""
    consecutive_failures: int
    last_failure_at: float | None
    opened_until: float | None

    @property
    def is_open(self) -> bool:
        return self.opened_until is not None


class CircuitBreaker:
    """
    Thread-safe consecutive-failure circuit breaker

    All reads and writes of the failure counter and timestamps happen under
    one lock, so concurrent failures are never lost.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            config: Threshold / cool-down settings (defaults if not provided)
            clock: Monotonic clock in seconds (replaceable in tests)
        """
        self.config = config or CircuitBreakerConfig()
        if self.config.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1.")
        if self.config.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be non-negative.")
        self._clock = clock
        self._lock = threading.Lock()
        self._consecutive_failures = 0
        self._last_failure_at: float | None = None

    @property
    def failure_threshold(self) -> int:
        return self.config.failure_threshold

    @property
    def cooldown_seconds(self) -> float:
        return self.config.cooldown_seconds

    def can_attempt(self) -> bool:
        """Return False while the circuit is open"""
        with self._lock:
            return self._remaining_locked(self._clock()) <= 0

    def is_open(self) -> bool:
        return not self.can_attempt()

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._expire_stale_failures_locked(now)
            self._consecutive_failures += 1
            self._last_failure_at = now
            if self._consecutive_failures == self.config.failure_threshold:
                logger.warning(
                    "Circuit breaker opened after %d consecutive failures (cool-down %.1fs)",
                    self._consecutive_failures,
                    self.config.cooldown_seconds,
                )

    def record_success(self) -> None:
        with self._lock:
            if self._consecutive_failures >= self.config.failure_threshold:
                logger.info("Circuit breaker closed after successful call")
            self._consecutive_failures = 0
            self._last_failure_at = None

    def reset(self) -> None:
        """Forget all failures (manual override)"""
        with self._lock:
            self._consecutive_failures = 0
            self._last_failure_at = None

    def get_failure_count(self) -> int:
        with self._lock:
            self._expire_stale_failures_locked(self._clock())
            return self._consecutive_failures

    def get_remaining_open_time(self) -> float:
        """Seconds until the circuit allows a call again (0 when closed)"""
        with self._lock:
            return self._remaining_locked(self._clock())

    def get_state(self) -> CircuitState:
        with self._lock:
            now = self._clock()
            self._expire_stale_failures_locked(now)
            remaining = self._remaining_locked(now)
            return CircuitState(
                consecutive_failures=self._consecutive_failures,
                last_failure_at=self._last_failure_at,
                opened_until=now + remaining if remaining > 0 else None,
            )

    def _remaining_locked(self, now: float) -> float:
        if self._consecutive_failures < self.config.failure_threshold or self._last_failure_at is None:
            return 0.0
        elapsed = now - self._last_failure_at
        return max(0.0, self.config.cooldown_seconds - elapsed)

    def _expire_stale_failures_locked(self, now: float) -> None:
        # Only sub-threshold failures decay; an open circuit closes on success alone
        window = self.config.failure_window_seconds
        if (
            window is None
            or self._last_failure_at is None
            or self._consecutive_failures >= self.config.failure_threshold
        ):
            return
        if now - self._last_failure_at > window:
            self._consecutive_failures = 0
            self._last_failure_at = None
