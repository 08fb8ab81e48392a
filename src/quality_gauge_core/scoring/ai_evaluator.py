"""
AI Evaluator

Scores translations with an LLM grader using the MQM framework.

Two entry points:
- evaluate_single: one target language, blind retry on unparseable output
- evaluate_multi_language: every target language of one key in one
  conversation; on unparseable output the grader sees its previous reply
  plus the validation error and is asked to fix it

Only the multi-language path reports to the circuit breaker.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Mapping, Sequence

from quality_gauge_core.circuit_breaker import CircuitBreaker
from quality_gauge_core.domain.entities import (
    EvaluationResult,
    ModelConfig,
    MultiLanguageRelatedKey,
    RelatedKey,
    TargetTranslation,
)
from quality_gauge_core.domain.errors import (
    CircuitOpenError,
    EvaluationCancelledError,
    ProviderError,
    ResponseParseError,
    RetriesExhaustedError,
)
from quality_gauge_core.domain.value_objects import (
    CacheMetrics,
    Message,
    ModelResponse,
    UsageMetrics,
)
from quality_gauge_core.evaluator_config import ConversationConfig, EvaluatorConfig, load_config
from quality_gauge_core.prompt_builder import (
    build_retry_feedback,
    build_single_messages,
    start_multi_language_conversation,
)
from quality_gauge_core.retry_policy import RetryPolicy
from quality_gauge_core.scoring.response_parser import (
    format_parse_error,
    parse_mqm_response,
    parse_multi_language_response,
)

logger = logging.getLogger(__name__)


class _Deadline:
    """Overall deadline of one evaluation call (None means no deadline)"""

    def __init__(self, timeout: float | None, clock: Callable[[], float]):
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


def split_evenly(total: int, parts: int) -> list[int]:
    """
    Split a token count into ``parts`` integers that sum to ``total``

    The remainder is handed out one token at a time from the first part.

    Example:
        split_evenly(10, 3) -> [4, 3, 3]
    """
    if parts <= 0:
        return []
    base, remainder = divmod(total, parts)
    return [base + 1 if i < remainder else base for i in range(parts)]


def _normalize_translations(
    translations: Sequence[TargetTranslation] | Mapping[str, str],
) -> list[TargetTranslation]:
    if isinstance(translations, Mapping):
        return [TargetTranslation(language=lang, value=value) for lang, value in translations.items()]
    return list(translations)


class AIEvaluator:
    """
    MQM evaluator backed by a model client

    One instance can be shared across worker threads: per-call state lives in
    local variables and the circuit breaker is lock-protected.
    """

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        retry_policy: RetryPolicy | None = None,
        conversation_config: ConversationConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            circuit_breaker: Breaker shared by every evaluator of the same provider
            retry_policy: Backoff and attempt budget (defaults if not provided)
            conversation_config: History cap for the conversational retry
            clock: Monotonic clock used for call deadlines (replaceable in tests)
        """
        self.circuit_breaker = circuit_breaker
        self.retry_policy = retry_policy or RetryPolicy()
        self.conversation_config = conversation_config or ConversationConfig()
        self._clock = clock

    # ------------------------------------------------------------------
    # Breaker delegation
    # ------------------------------------------------------------------

    def can_attempt(self) -> bool:
        return self.circuit_breaker.can_attempt()

    def get_remaining_open_time(self) -> float:
        return self.circuit_breaker.get_remaining_open_time()

    def get_failure_count(self) -> int:
        return self.circuit_breaker.get_failure_count()

    # ------------------------------------------------------------------
    # Single language
    # ------------------------------------------------------------------

    def evaluate_single(
        self,
        key: str,
        source: str,
        target: str,
        source_language: str,
        target_language: str,
        related_keys: Sequence[RelatedKey],
        model_config: ModelConfig,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> EvaluationResult:
        """
        Evaluate one translation

        The same messages are re-sent on every attempt. The circuit breaker
        is neither consulted nor updated.

        Args:
            key: Translation key identifier
            source: Source text
            target: Target translation
            source_language: Source language code
            target_language: Target language code
            related_keys: Related translations used as context
            model_config: Model client and caching options
            timeout: Overall deadline in seconds for all attempts
            cancel_event: Set by the caller to abandon remaining attempts

        Returns:
            EvaluationResult carrying the successful call's usage

        Raises:
            RetriesExhaustedError: If every attempt failed
            EvaluationCancelledError: If the deadline passed or the event was set
        """
        messages = build_single_messages(
            key,
            source,
            target,
            source_language,
            target_language,
            related_keys,
            cache_control=model_config.supports_prompt_caching,
        )
        deadline = _Deadline(timeout, self._clock)
        max_attempts = self.retry_policy.max_retries
        usage = UsageMetrics()
        cache_metrics = CacheMetrics()
        last_error: Exception | None = None
        last_output: str | None = None

        for attempt in self.retry_policy.attempts():
            if attempt > 0:
                self._backoff(attempt, deadline, cancel_event, usage, cache_metrics)
            self._raise_if_cancelled(attempt, deadline, cancel_event, usage, cache_metrics)

            try:
                response = self._call(model_config, messages, deadline)
            except ProviderError as e:
                last_error = e
                logger.warning(
                    "[%s] Provider call failed (attempt %d/%d): %s", key, attempt + 1, max_attempts, e
                )
                continue

            call_usage = self._usage(response, model_config)
            call_cache = self._cache_metrics(response, model_config)
            usage = usage + call_usage
            cache_metrics = cache_metrics + call_cache

            try:
                score = parse_mqm_response(response.output)
            except ResponseParseError as e:
                last_error = e
                last_output = response.output
                logger.warning(
                    "[%s] JSON parse failed (attempt %d/%d): %s", key, attempt + 1, max_attempts, e
                )
                continue

            if attempt > 0:
                logger.info("[%s] JSON parse succeeded on retry %d", key, attempt)
            return EvaluationResult(score=score, usage=call_usage, cache_metrics=call_cache)

        raise RetriesExhaustedError(
            max_attempts,
            last_error=last_error,
            last_response=last_output,
            usage=usage,
            cache_metrics=cache_metrics,
        )

    # ------------------------------------------------------------------
    # Multi language
    # ------------------------------------------------------------------

    def evaluate_multi_language(
        self,
        key: str,
        source: str,
        source_language: str,
        translations: Sequence[TargetTranslation] | Mapping[str, str],
        related_keys: Sequence[MultiLanguageRelatedKey],
        model_config: ModelConfig,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> dict[str, EvaluationResult]:
        """
        Evaluate every target language of one key in a single conversation

        On an unparseable reply the conversation grows by the assistant reply
        and a feedback message describing the validation error. Provider
        errors re-send the conversation unchanged. Either kind of failure
        consumes one attempt.

        Usage and cache metrics are summed across all turns and split evenly
        across the returned languages, so the per-language values add up to
        the totals.

        Args:
            key: Translation key identifier
            source: Source text
            source_language: Source language code
            translations: Target languages with their current values, in request order
            related_keys: Related keys with translations in every language
            model_config: Model client and caching options
            timeout: Overall deadline in seconds for all turns
            cancel_event: Set by the caller to abandon remaining turns

        Returns:
            Mapping of language code to EvaluationResult for every requested
            language present in the grader's final reply

        Raises:
            CircuitOpenError: If the circuit breaker is open (no provider call is made)
            RetriesExhaustedError: If every attempt failed (recorded on the breaker)
            ValueError: If no target translation is given
            EvaluationCancelledError: If the deadline passed or the event was set
        """
        targets = _normalize_translations(translations)
        if not targets:
            raise ValueError("At least one target translation is required")
        if not self.circuit_breaker.can_attempt():
            raise CircuitOpenError(self.circuit_breaker.get_remaining_open_time())

        languages = [t.language for t in targets]
        conversation = start_multi_language_conversation(
            key,
            source,
            source_language,
            targets,
            related_keys,
            cache_control=model_config.supports_prompt_caching,
            max_history=self.conversation_config.max_conversation_messages,
        )
        deadline = _Deadline(timeout, self._clock)
        max_attempts = self.retry_policy.max_retries
        usage = UsageMetrics()
        cache_metrics = CacheMetrics()
        last_error: Exception | None = None
        last_output: str | None = None

        for attempt in self.retry_policy.attempts():
            if attempt > 0:
                self._backoff(attempt, deadline, cancel_event, usage, cache_metrics)
            self._raise_if_cancelled(attempt, deadline, cancel_event, usage, cache_metrics)

            logger.debug(
                "[%s] Turn %d/%d (%d messages, languages: %s)",
                key, attempt + 1, max_attempts, len(conversation), ", ".join(languages),
            )
            try:
                response = self._call(model_config, conversation.messages, deadline)
            except ProviderError as e:
                last_error = e
                logger.warning(
                    "[%s] Provider call failed (attempt %d/%d): %s", key, attempt + 1, max_attempts, e
                )
                continue

            usage = usage + self._usage(response, model_config)
            cache_metrics = cache_metrics + self._cache_metrics(response, model_config)

            try:
                scores = parse_multi_language_response(response.output, languages)
            except ResponseParseError as e:
                last_error = e
                last_output = response.output
                logger.warning(
                    "[%s] JSON parse failed (attempt %d/%d): %s", key, attempt + 1, max_attempts, e
                )
                conversation = conversation.append(
                    Message(role="assistant", content=response.output),
                    Message(role="user", content=build_retry_feedback(format_parse_error(e))),
                )
                continue

            self.circuit_breaker.record_success()
            if attempt > 0:
                logger.info("[%s] Conversation retry succeeded on attempt %d", key, attempt + 1)
            missing = [lang for lang in languages if lang not in scores]
            if missing:
                logger.warning("[%s] Grader omitted languages: %s", key, ", ".join(missing))
            return self._split_results(scores, usage, cache_metrics)

        self.circuit_breaker.record_failure()
        logger.error("[%s] All %d attempts failed: %s", key, max_attempts, last_error)
        raise RetriesExhaustedError(
            max_attempts,
            last_error=last_error,
            last_response=last_output,
            usage=usage,
            cache_metrics=cache_metrics,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _call(
        model_config: ModelConfig,
        messages: Sequence[Message],
        deadline: _Deadline,
    ) -> ModelResponse:
        return model_config.client.generate(list(messages), timeout=deadline.remaining())

    @staticmethod
    def _usage(response: ModelResponse, model_config: ModelConfig) -> UsageMetrics:
        # Without caching, cache tokens are billed as plain input
        if model_config.supports_prompt_caching:
            return response.usage
        return UsageMetrics(
            response.input_tokens + response.cache_read_tokens + response.cache_creation_tokens,
            response.output_tokens,
        )

    @staticmethod
    def _cache_metrics(response: ModelResponse, model_config: ModelConfig) -> CacheMetrics:
        if not model_config.supports_prompt_caching:
            return CacheMetrics()
        return response.cache_metrics

    @staticmethod
    def _raise_if_cancelled(
        attempts: int,
        deadline: _Deadline,
        cancel_event: threading.Event | None,
        usage: UsageMetrics,
        cache_metrics: CacheMetrics,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise EvaluationCancelledError(attempts, usage, cache_metrics, reason="cancelled")
        if deadline.expired():
            raise EvaluationCancelledError(attempts, usage, cache_metrics, reason="timed out")

    def _backoff(
        self,
        attempt: int,
        deadline: _Deadline,
        cancel_event: threading.Event | None,
        usage: UsageMetrics,
        cache_metrics: CacheMetrics,
    ) -> None:
        delay = self.retry_policy.delay_for(attempt - 1)
        remaining = deadline.remaining()
        if remaining is not None:
            delay = min(delay, remaining)
        logger.debug("Backoff: waiting %.2fs before retry", delay)
        if not self.retry_policy.wait(delay, cancel_event):
            raise EvaluationCancelledError(attempt, usage, cache_metrics, reason="cancelled")

    @staticmethod
    def _split_results(
        scores: dict,
        usage: UsageMetrics,
        cache_metrics: CacheMetrics,
    ) -> dict[str, EvaluationResult]:
        count = len(scores)
        input_split = split_evenly(usage.input_tokens, count)
        output_split = split_evenly(usage.output_tokens, count)
        read_split = split_evenly(cache_metrics.cache_read_tokens, count)
        creation_split = split_evenly(cache_metrics.cache_creation_tokens, count)

        results = {}
        for i, (lang, score) in enumerate(scores.items()):
            results[lang] = EvaluationResult(
                score=score,
                usage=UsageMetrics(input_split[i], output_split[i]),
                cache_metrics=CacheMetrics(read_split[i], creation_split[i]),
            )
        return results


def create_evaluator(config: EvaluatorConfig | None = None) -> AIEvaluator:
    """Build an evaluator with its own circuit breaker from configuration"""
    if config is None:
        config = load_config()
    return AIEvaluator(
        circuit_breaker=CircuitBreaker(config.circuit_breaker),
        retry_policy=RetryPolicy(config.retry),
        conversation_config=config.conversation,
    )
