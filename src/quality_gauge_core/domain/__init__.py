"""
Domain Layer

Defines constants, entities, value objects, and errors that form the core of the business logic.
Has no dependencies on external libraries.
"""

from quality_gauge_core.domain.constants import (
    MODEL_PRICING,
    _LOCAL_MODEL_PRICING,
)
from quality_gauge_core.domain.entities import (
    EvaluationResult,
    EvaluatorStatus,
    HealthCheckResult,
    ModelConfig,
    MultiLanguageRelatedKey,
    RelatedKey,
    TargetTranslation,
)
from quality_gauge_core.domain.errors import (
    CircuitOpenError,
    EvaluationCancelledError,
    ProviderError,
    QualityEvaluationError,
    ResponseParseError,
    RetriesExhaustedError,
)
from quality_gauge_core.domain.value_objects import (
    CacheMetrics,
    CostMetrics,
    Message,
    ModelResponse,
    MQMIssue,
    MQMScore,
    UsageMetrics,
)

__all__ = [
    # constants
    "MODEL_PRICING",
    "_LOCAL_MODEL_PRICING",
    # entities
    "EvaluationResult",
    "EvaluatorStatus",
    "HealthCheckResult",
    "ModelConfig",
    "MultiLanguageRelatedKey",
    "RelatedKey",
    "TargetTranslation",
    # errors
    "CircuitOpenError",
    "EvaluationCancelledError",
    "ProviderError",
    "QualityEvaluationError",
    "ResponseParseError",
    "RetriesExhaustedError",
    # value objects
    "CacheMetrics",
    "CostMetrics",
    "Message",
    "ModelResponse",
    "MQMIssue",
    "MQMScore",
    "UsageMetrics",
]
