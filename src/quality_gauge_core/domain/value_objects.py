"""
Domain Value Objects

Defines immutable data structures representing values such as MQM scores,
model responses, conversation messages, and token usage.
"""

from dataclasses import dataclass, field


VALID_SEVERITIES = ("critical", "major", "minor")
VALID_ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class MQMIssue:
    """A single issue reported by the grader"""
    type: str
    severity: str  # critical / major / minor
    message: str

    def __post_init__(self):
        if self.severity not in VALID_SEVERITIES:
            raise ValueError(f"Invalid severity: {self.severity}. Valid values: {VALID_SEVERITIES}")


@dataclass(frozen=True)
class MQMScore:
    """MQM score for one language (each dimension 0-100)"""
    accuracy: int
    fluency: int
    terminology: int
    issues: tuple[MQMIssue, ...] = ()

    def __post_init__(self):
        for name in ("accuracy", "fluency", "terminology"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within 0-100, got {value}")


@dataclass(frozen=True)
class UsageMetrics:
    """Token usage, summed across every turn of one logical call"""
    input_tokens: int = 0
    output_tokens: int = 0

    def __post_init__(self):
        if self.input_tokens < 0:
            raise ValueError("input_tokens must be non-negative")
        if self.output_tokens < 0:
            raise ValueError("output_tokens must be non-negative")

    def __add__(self, other: "UsageMetrics") -> "UsageMetrics":
        return UsageMetrics(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass(frozen=True)
class CacheMetrics:
    """Prompt-cache token counts (zero unless the provider caches prompts)"""
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    def __post_init__(self):
        if self.cache_read_tokens < 0:
            raise ValueError("cache_read_tokens must be non-negative")
        if self.cache_creation_tokens < 0:
            raise ValueError("cache_creation_tokens must be non-negative")

    def __add__(self, other: "CacheMetrics") -> "CacheMetrics":
        return CacheMetrics(
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
            cache_creation_tokens=self.cache_creation_tokens + other.cache_creation_tokens,
        )


@dataclass(frozen=True)
class Message:
    """One entry of the message list sent to a model client"""
    role: str
    content: str
    cache_control: bool = False

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(f"Invalid role: {self.role}. Valid values: {VALID_ROLES}")


@dataclass(frozen=True)
class ModelResponse:
    """Model response"""
    output: str
    latency_ms: int
    model_name: str
    input_tokens: int = 0  # uncached input; cache reads and writes are counted separately
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    @property
    def usage(self) -> UsageMetrics:
        return UsageMetrics(self.input_tokens, self.output_tokens)

    @property
    def cache_metrics(self) -> CacheMetrics:
        return CacheMetrics(self.cache_read_tokens, self.cache_creation_tokens)


@dataclass(frozen=True)
class CostMetrics:
    """Cost calculation metrics"""
    usage: UsageMetrics = field(default_factory=UsageMetrics)
    cache_metrics: CacheMetrics = field(default_factory=CacheMetrics)

    # Pricing (USD per 1M tokens)
    input_price_per_m: float = 0.0
    output_price_per_m: float = 0.0
    cache_read_price_per_m: float = 0.0
    cache_write_price_per_m: float = 0.0
