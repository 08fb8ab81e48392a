"""
Quality Evaluator Configuration

Manages loading from environment variables and default values.
"""

import os
from dataclasses import dataclass, field, asdict


def _env_bool(key: str, default: bool) -> bool:
    """Convert an environment variable to bool"""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int) -> int:
    """Convert an environment variable to int"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to an integer.")


def _env_float(key: str, default: float) -> float:
    """Convert an environment variable to float"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to a number.")


def _env_optional_float(key: str, default: float | None) -> float | None:
    """Convert an environment variable to float; an empty value disables the setting"""
    val = os.environ.get(key)
    if val is None:
        return default
    if not val.strip():
        return None
    return _env_float(key, 0.0)


def _env_str(key: str, default: str) -> str:
    """Get an environment variable as a string"""
    return os.environ.get(key, default)


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration"""
    failure_threshold: int = 5
    cooldown_seconds: float = 30.0
    failure_window_seconds: float | None = 60.0  # None keeps sub-threshold failures forever


@dataclass
class RetryConfig:
    """Backoff configuration (max_retries is the total number of attempts)"""
    max_retries: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    multiplier: float = 2.0


@dataclass
class ConversationConfig:
    """Conversational retry configuration (multi-language evaluation)"""
    max_conversation_messages: int = 10


@dataclass
class BatchConfig:
    """Bulk quality run configuration"""
    concurrency: int = 3
    timeout_seconds: float | None = 120.0  # per key
    multi_related_keys_limit: int = 5


@dataclass
class LMStudioConfig:
    """LMStudio (OpenAI-compatible local LLM) configuration"""
    base_url: str = "http://localhost:1234/v1"
    api_key: str = "lm-studio"


@dataclass
class EvaluatorConfig:
    """Overall quality evaluator configuration"""
    grader_model: str = "claude-haiku-4-5-20251001"
    prompt_caching: bool = True
    request_timeout_seconds: int = 60
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    lmstudio: LMStudioConfig = field(default_factory=LMStudioConfig)

    def to_dict(self) -> dict:
        """Convert to dictionary format"""
        return {"evaluator_config": asdict(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "EvaluatorConfig":
        """Create from dictionary (handles presence/absence of evaluator_config key)"""
        config_data = data.get("evaluator_config", data)
        defaults = cls()
        return cls(
            grader_model=config_data.get("grader_model", defaults.grader_model),
            prompt_caching=config_data.get("prompt_caching", defaults.prompt_caching),
            request_timeout_seconds=config_data.get(
                "request_timeout_seconds", defaults.request_timeout_seconds
            ),
            circuit_breaker=CircuitBreakerConfig(**config_data.get("circuit_breaker", {})),
            retry=RetryConfig(**config_data.get("retry", {})),
            conversation=ConversationConfig(**config_data.get("conversation", {})),
            batch=BatchConfig(**config_data.get("batch", {})),
            lmstudio=LMStudioConfig(**config_data.get("lmstudio", {})),
        )


def load_config() -> EvaluatorConfig:
    """
    Load configuration from environment variables

    Uses default values when environment variables are not set.

    Returns:
        EvaluatorConfig
    """
    circuit_breaker = CircuitBreakerConfig(
        failure_threshold=_env_int("QE_CB_FAILURE_THRESHOLD", 5),
        cooldown_seconds=_env_float("QE_CB_COOLDOWN_SECONDS", 30.0),
        failure_window_seconds=_env_optional_float("QE_CB_FAILURE_WINDOW_SECONDS", 60.0),
    )
    retry = RetryConfig(
        max_retries=_env_int("QE_MAX_RETRIES", 3),
        initial_delay_seconds=_env_float("QE_RETRY_INITIAL_DELAY_SECONDS", 1.0),
        max_delay_seconds=_env_float("QE_RETRY_MAX_DELAY_SECONDS", 10.0),
        multiplier=_env_float("QE_RETRY_MULTIPLIER", 2.0),
    )
    conversation = ConversationConfig(
        max_conversation_messages=_env_int("QE_MAX_CONVERSATION_MESSAGES", 10),
    )
    batch = BatchConfig(
        concurrency=_env_int("QE_BATCH_CONCURRENCY", 3),
        timeout_seconds=_env_optional_float("QE_BATCH_TIMEOUT_SECONDS", 120.0),
        multi_related_keys_limit=_env_int("QE_MULTI_RELATED_KEYS_LIMIT", 5),
    )
    lmstudio = LMStudioConfig(
        base_url=_env_str("LMSTUDIO_BASE_URL", "http://localhost:1234/v1"),
        api_key=_env_str("LMSTUDIO_API_KEY", "lm-studio"),
    )
    return EvaluatorConfig(
        grader_model=_env_str("QE_GRADER_MODEL", "claude-haiku-4-5-20251001"),
        prompt_caching=_env_bool("QE_PROMPT_CACHING", True),
        request_timeout_seconds=_env_int("QE_REQUEST_TIMEOUT_SECONDS", 60),
        circuit_breaker=circuit_breaker,
        retry=retry,
        conversation=conversation,
        batch=batch,
        lmstudio=lmstudio,
    )
