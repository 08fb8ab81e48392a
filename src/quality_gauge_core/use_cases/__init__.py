"""
Use Cases Layer

Aggregates business logic and provides use cases called from the runner.
"""

from quality_gauge_core.use_cases.health_check import (
    HEALTH_CHECK_PROMPT,
    evaluator_status,
    health_check_model,
    run_health_check,
)
from quality_gauge_core.use_cases.quality_batch import (
    KeyOutcome,
    QualityBatchSummary,
    evaluate_key,
    group_by_key,
    run_quality_batch,
    summary_to_dataframe,
)

__all__ = [
    # health_check
    "HEALTH_CHECK_PROMPT",
    "evaluator_status",
    "health_check_model",
    "run_health_check",
    # quality_batch
    "KeyOutcome",
    "QualityBatchSummary",
    "evaluate_key",
    "group_by_key",
    "run_quality_batch",
    "summary_to_dataframe",
]
