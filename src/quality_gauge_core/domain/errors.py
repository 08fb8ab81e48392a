"""
Domain Errors

Error taxonomy of the quality evaluator.

Retryable errors (ResponseParseError, ProviderError) are handled inside the
evaluator. Only terminal errors (CircuitOpenError, RetriesExhaustedError,
EvaluationCancelledError) reach callers.
"""

from __future__ import annotations

import math

from quality_gauge_core.domain.value_objects import CacheMetrics, UsageMetrics


class QualityEvaluationError(Exception):
    """Base class for all evaluator errors"""
    pass


class CircuitOpenError(QualityEvaluationError):
    """Raised without calling the provider while the circuit breaker is open"""

    def __init__(self, remaining_seconds: float):
        self.remaining_seconds = remaining_seconds
        super().__init__(
            "Circuit breaker is open: too many AI failures. "
            f"Retry after {math.ceil(remaining_seconds)}s"
        )


class ResponseParseError(QualityEvaluationError):
    """The model response did not contain a valid MQM payload"""

    def __init__(self, reason: str, path: str = "", raw: str = ""):
        self.reason = reason
        self.path = path
        self.raw = raw
        message = f"Path: {path}, Error: {reason}" if path else reason
        super().__init__(message)


class ProviderError(QualityEvaluationError):
    """Network, auth, rate-limit or other failure reported by a model client"""

    def __init__(self, message: str, *, provider: str = "", transient: bool = True):
        self.provider = provider
        self.transient = transient
        super().__init__(message)


class RetriesExhaustedError(QualityEvaluationError):
    """
    Every attempt of the retry budget failed

    usage / cache_metrics cover every billed turn of the failed call.
    """

    def __init__(
        self,
        attempts: int,
        last_error: Exception | None = None,
        last_response: str | None = None,
        usage: UsageMetrics | None = None,
        cache_metrics: CacheMetrics | None = None,
    ):
        self.attempts = attempts
        self.last_error = last_error
        self.last_response = last_response
        self.usage = usage if usage is not None else UsageMetrics()
        self.cache_metrics = cache_metrics if cache_metrics is not None else CacheMetrics()
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"Failed to get valid JSON after {attempts} attempts{detail}")


class EvaluationCancelledError(QualityEvaluationError):
    """The caller's deadline passed or its cancel event was set"""

    def __init__(
        self,
        attempts: int,
        usage: UsageMetrics,
        cache_metrics: CacheMetrics,
        reason: str = "cancelled",
    ):
        self.attempts = attempts
        self.usage = usage
        self.cache_metrics = cache_metrics
        super().__init__(f"Evaluation {reason} after {attempts} attempts")
