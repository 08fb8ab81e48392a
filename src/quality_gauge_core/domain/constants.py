"""
Domain Constants

Centrally manages constants shared across the quality evaluator.
"""

# Model pricing (USD / 1M tokens)
# cache_read / cache_write apply to prompt-cached input tokens
MODEL_PRICING = {
    "gemini-2.5-pro": {"input": 1.25, "output": 5.0, "cache_read": 0.31, "cache_write": 1.25},
    "gemini-2.5-flash": {"input": 0.075, "output": 0.30, "cache_read": 0.019, "cache_write": 0.075},
    "claude-sonnet-4-5-20250929": {"input": 3.0, "output": 15.0, "cache_read": 0.30, "cache_write": 3.75},
    "claude-haiku-4-5-20251001": {"input": 0.80, "output": 4.0, "cache_read": 0.08, "cache_write": 1.0},
    "claude-opus-4-5-20251101": {"input": 15.0, "output": 75.0, "cache_read": 1.50, "cache_write": 18.75},
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60, "cache_read": 0.10, "cache_write": 0.40},
}

# Default pricing for local models (LMStudio, etc.)
_LOCAL_MODEL_PRICING = {"input": 0.0, "output": 0.0, "cache_read": 0.0, "cache_write": 0.0}
