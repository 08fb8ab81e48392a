"""
Quality Batch

Evaluates many keys with the multi-language evaluator in parallel.

Each key is evaluated in one grader conversation covering all of its target
languages. A failing key is recorded and the run continues; the batch never
aborts on a single key's error.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Sequence

import pandas as pd

from quality_gauge_core.domain.entities import EvaluationResult, ModelConfig
from quality_gauge_core.domain.errors import (
    EvaluationCancelledError,
    QualityEvaluationError,
    RetriesExhaustedError,
)
from quality_gauge_core.domain.value_objects import CacheMetrics, UsageMetrics
from quality_gauge_core.evaluator_config import BatchConfig
from quality_gauge_core.key_loader import KeyEvaluationItem
from quality_gauge_core.scoring.ai_evaluator import AIEvaluator
from quality_gauge_core.scoring.combine_scores import calculate_combined_score

logger = logging.getLogger(__name__)

# Number of error entries kept on the summary
ERROR_SAMPLE_SIZE = 5

ProgressCallback = Callable[[int, int], None]


@dataclass
class KeyOutcome:
    """Evaluation outcome of one key"""
    key: str
    languages: list[str]
    results: dict[str, EvaluationResult] = field(default_factory=dict)
    combined_scores: dict[str, int] = field(default_factory=dict)
    format_scores: dict[str, float] = field(default_factory=dict)
    missing_languages: list[str] = field(default_factory=list)
    error: str | None = None
    usage: UsageMetrics = field(default_factory=UsageMetrics)
    cache_metrics: CacheMetrics = field(default_factory=CacheMetrics)

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class QualityBatchSummary:
    """Summary of a bulk quality run (counts are per translation)"""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_keys: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)
    outcomes: list[KeyOutcome] = field(default_factory=list)
    usage: UsageMetrics = field(default_factory=UsageMetrics)
    cache_metrics: CacheMetrics = field(default_factory=CacheMetrics)


def group_by_key(items: Sequence[KeyEvaluationItem]) -> list[KeyEvaluationItem]:
    """
    Merge items that share a key, keeping first-seen order

    Later translations for an already-seen language replace earlier ones.
    """
    grouped: dict[str, KeyEvaluationItem] = {}
    for item in items:
        existing = grouped.get(item.key)
        if existing is None:
            grouped[item.key] = KeyEvaluationItem(
                key=item.key,
                source=item.source,
                translations=list(item.translations),
                related_keys=list(item.related_keys),
                format_scores=dict(item.format_scores),
            )
            continue
        by_language = {t.language: t for t in existing.translations}
        for t in item.translations:
            by_language[t.language] = t
        existing.translations = list(by_language.values())
        existing.related_keys.extend(item.related_keys)
        existing.format_scores.update(item.format_scores)
    return list(grouped.values())


def evaluate_key(
    evaluator: AIEvaluator,
    item: KeyEvaluationItem,
    source_language: str,
    model_config: ModelConfig,
    config: BatchConfig,
    cancel_event: threading.Event | None = None,
) -> KeyOutcome:
    """
    Evaluate every language of one key

    Evaluator errors are captured on the outcome instead of raised.
    """
    outcome = KeyOutcome(
        key=item.key,
        languages=item.languages,
        format_scores=dict(item.format_scores),
    )
    try:
        results = evaluator.evaluate_multi_language(
            item.key,
            item.source,
            source_language,
            item.translations,
            item.related_keys[: config.multi_related_keys_limit],
            model_config,
            timeout=config.timeout_seconds,
            cancel_event=cancel_event,
        )
    except (EvaluationCancelledError, RetriesExhaustedError) as e:
        # Failed turns are still billed
        outcome.error = str(e)
        outcome.usage = e.usage
        outcome.cache_metrics = e.cache_metrics
        return outcome
    except QualityEvaluationError as e:
        outcome.error = str(e)
        return outcome

    outcome.results = results
    outcome.missing_languages = [lang for lang in item.languages if lang not in results]
    for lang, result in results.items():
        format_score = item.format_scores.get(lang, 100.0)
        outcome.combined_scores[lang] = calculate_combined_score(result.score, format_score)
        outcome.usage = outcome.usage + result.usage
        outcome.cache_metrics = outcome.cache_metrics + result.cache_metrics
    return outcome


def run_quality_batch(
    evaluator: AIEvaluator,
    items: Sequence[KeyEvaluationItem],
    source_language: str,
    model_config: ModelConfig,
    config: BatchConfig | None = None,
    progress_callback: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> QualityBatchSummary:
    """
    Evaluate all keys (parallel execution per key).

    Args:
        evaluator: Shared evaluator (its circuit breaker is shared by all workers)
        items: Keys to evaluate
        source_language: Source language code
        model_config: Model client and caching options
        config: Batch configuration (defaults if not provided)
        progress_callback: Called with (processed_translations, total_translations)
            after each key finishes
        cancel_event: Set to abandon the remaining work

    Returns:
        QualityBatchSummary
    """
    config = config or BatchConfig()
    keys = group_by_key(items)
    summary = QualityBatchSummary()
    if not keys:
        logger.info("Quality batch: no keys provided")
        return summary

    total = sum(len(item.translations) for item in keys)
    logger.info(
        "Starting quality batch evaluation (%d keys, %d translations, concurrency %d)",
        len(keys), total, config.concurrency,
    )

    outcomes: list[KeyOutcome | None] = [None] * len(keys)
    with ThreadPoolExecutor(max_workers=max(1, config.concurrency)) as executor:
        futures = {
            executor.submit(
                evaluate_key,
                evaluator,
                item,
                source_language,
                model_config,
                config,
                cancel_event,
            ): index
            for index, item in enumerate(keys)
        }

        for future in as_completed(futures):
            index = futures[future]
            outcome = future.result()
            outcomes[index] = outcome
            _record_outcome(summary, outcome)
            if progress_callback is not None:
                progress_callback(summary.processed, total)

    summary.outcomes = [outcome for outcome in outcomes if outcome is not None]

    logger.info(
        "Quality batch evaluation complete (%d succeeded, %d failed)",
        summary.succeeded, summary.failed,
    )
    if summary.failed:
        logger.warning(
            "Quality evaluation failures: keys=%s sample=%s",
            summary.failed_keys, summary.errors,
        )
    return summary


def _record_outcome(summary: QualityBatchSummary, outcome: KeyOutcome) -> None:
    summary.processed += len(outcome.languages)
    summary.usage = summary.usage + outcome.usage
    summary.cache_metrics = summary.cache_metrics + outcome.cache_metrics

    if outcome.succeeded:
        summary.succeeded += len(outcome.results)
        summary.failed += len(outcome.missing_languages)
        if outcome.missing_languages:
            _add_error(summary, outcome.key, "Missing languages: " + ", ".join(outcome.missing_languages))
        return

    summary.failed += len(outcome.languages)
    summary.failed_keys.append(outcome.key)
    logger.error("Quality evaluation failed for key %s: %s", outcome.key, outcome.error)
    _add_error(summary, outcome.key, outcome.error or "Unknown error")


def _add_error(summary: QualityBatchSummary, key: str, error: str) -> None:
    if len(summary.errors) < ERROR_SAMPLE_SIZE:
        summary.errors.append({"key": key, "error": error})


def summary_to_dataframe(summary: QualityBatchSummary) -> pd.DataFrame:
    """
    Flatten a batch summary into one row per key x language

    Failed and missing languages get a row with an ``error`` and empty scores.
    """
    rows = []
    for outcome in summary.outcomes:
        for lang in outcome.languages:
            result = outcome.results.get(lang)
            row = {
                "key": outcome.key,
                "language": lang,
                "status": "evaluated" if result is not None else "failed",
                "accuracy": None,
                "fluency": None,
                "terminology": None,
                "format_score": outcome.format_scores.get(lang, 100.0),
                "combined_score": outcome.combined_scores.get(lang),
                "issue_count": 0,
                "input_tokens": 0,
                "output_tokens": 0,
                "cache_read_tokens": 0,
                "cache_creation_tokens": 0,
                "error": outcome.error,
            }
            if result is not None:
                row.update({
                    "accuracy": result.score.accuracy,
                    "fluency": result.score.fluency,
                    "terminology": result.score.terminology,
                    "issue_count": len(result.score.issues),
                    "input_tokens": result.usage.input_tokens,
                    "output_tokens": result.usage.output_tokens,
                    "cache_read_tokens": result.cache_metrics.cache_read_tokens,
                    "cache_creation_tokens": result.cache_metrics.cache_creation_tokens,
                })
            elif outcome.error is None:
                row["error"] = "Language omitted by grader"
            rows.append(row)
    return pd.DataFrame(rows)
