"""
Domain Entities

Defines the primary data structures used in the evaluation process.
"""

from dataclasses import dataclass, field
from typing import Optional

from quality_gauge_core.domain.value_objects import (
    CacheMetrics,
    MQMScore,
    UsageMetrics,
)


VALID_RELATIONSHIP_TYPES = ("NEARBY", "KEY_PATTERN", "SAME_COMPONENT", "SAME_FILE", "SEMANTIC")


@dataclass(frozen=True)
class EvaluationResult:
    """Result of evaluating one translation (one language)"""
    score: MQMScore
    usage: UsageMetrics = field(default_factory=UsageMetrics)
    cache_metrics: CacheMetrics = field(default_factory=CacheMetrics)


@dataclass(frozen=True)
class TargetTranslation:
    """A target language and its current translation"""
    language: str
    value: str


@dataclass(frozen=True)
class RelatedKey:
    """Related key with a single target translation (single-language evaluation)"""
    key: str
    source: str
    target: str
    relationship_type: Optional[str] = None
    confidence: Optional[float] = None
    is_approved: bool = False

    def __post_init__(self):
        if self.relationship_type is not None and self.relationship_type not in VALID_RELATIONSHIP_TYPES:
            raise ValueError(
                f"Invalid relationship type: {self.relationship_type}. Valid values: {VALID_RELATIONSHIP_TYPES}"
            )


@dataclass(frozen=True)
class MultiLanguageRelatedKey:
    """Related key with translations in every language (batch evaluation)"""
    key: str
    source: str
    translations: dict[str, str] = field(default_factory=dict)
    relationship_type: Optional[str] = None
    confidence: Optional[float] = None
    is_approved: bool = False

    def __post_init__(self):
        if self.relationship_type is not None and self.relationship_type not in VALID_RELATIONSHIP_TYPES:
            raise ValueError(
                f"Invalid relationship type: {self.relationship_type}. Valid values: {VALID_RELATIONSHIP_TYPES}"
            )

    def for_language(self, language: str) -> Optional[RelatedKey]:
        """Narrow to one target language (None if there is no translation for it)"""
        target = self.translations.get(language)
        if not target:
            return None
        return RelatedKey(
            key=self.key,
            source=self.source,
            target=target,
            relationship_type=self.relationship_type,
            confidence=self.confidence,
            is_approved=self.is_approved,
        )


@dataclass(frozen=True)
class ModelConfig:
    """
    Model client plus capability flags for one evaluation call.

    ``prompt_caching`` is only set for providers that report cache tokens.
    """
    client: object  # ModelClient; typed loosely to keep the domain free of infrastructure imports
    prompt_caching: bool = False

    @property
    def supports_prompt_caching(self) -> bool:
        return self.prompt_caching


@dataclass
class HealthCheckResult:
    """Health check result"""
    model_name: str
    success: bool
    latency_ms: int | None
    error: str | None


@dataclass
class EvaluatorStatus:
    """Circuit breaker view exposed to health checks"""
    can_attempt: bool
    remaining_open_seconds: float
    failure_count: int
