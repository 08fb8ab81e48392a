"""
Grader Cost Calculation

Converts token usage (including prompt-cache reads and writes) into USD.
"""

from quality_gauge_core.domain.constants import MODEL_PRICING, _LOCAL_MODEL_PRICING
from quality_gauge_core.domain.value_objects import CacheMetrics, CostMetrics, UsageMetrics


def get_model_pricing(model_name: str) -> dict[str, float]:
    """
    Look up the pricing of a model (USD / 1M tokens)

    Local models (lmstudio/*) and unknown models are priced at zero.
    """
    if model_name.startswith("lmstudio/"):
        return _LOCAL_MODEL_PRICING
    return MODEL_PRICING.get(model_name.removeprefix("openai/"), _LOCAL_MODEL_PRICING)


def build_cost_metrics(
    model_name: str,
    usage: UsageMetrics,
    cache_metrics: CacheMetrics | None = None,
) -> CostMetrics:
    """Attach the model's pricing to accumulated usage"""
    pricing = get_model_pricing(model_name)
    return CostMetrics(
        usage=usage,
        cache_metrics=cache_metrics or CacheMetrics(),
        input_price_per_m=pricing["input"],
        output_price_per_m=pricing["output"],
        cache_read_price_per_m=pricing["cache_read"],
        cache_write_price_per_m=pricing["cache_write"],
    )


def calculate_total_cost(metrics: CostMetrics) -> float:
    """
    Calculate total cost

    Total cost = input + output + cache read + cache write token cost

    Args:
        metrics: CostMetrics instance

    Returns:
        Total cost (USD)
    """
    return (
        (metrics.usage.input_tokens / 1_000_000) * metrics.input_price_per_m +
        (metrics.usage.output_tokens / 1_000_000) * metrics.output_price_per_m +
        (metrics.cache_metrics.cache_read_tokens / 1_000_000) * metrics.cache_read_price_per_m +
        (metrics.cache_metrics.cache_creation_tokens / 1_000_000) * metrics.cache_write_price_per_m
    )
