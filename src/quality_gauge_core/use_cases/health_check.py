"""
Health Check

Performs connectivity checks for grader models and reports the circuit
breaker state of an evaluator.
"""

from typing import Callable

from quality_gauge_core.domain.entities import EvaluatorStatus, HealthCheckResult
from quality_gauge_core.domain.errors import ProviderError
from quality_gauge_core.domain.value_objects import Message
from quality_gauge_core.infrastructure.model_clients.base import ModelClient
from quality_gauge_core.scoring.ai_evaluator import AIEvaluator


HEALTH_CHECK_PROMPT = "Reply with only 'OK' if you can read this message."


def health_check_model(
    model_name: str,
    create_client_fn: Callable[[str], ModelClient],
    timeout: float | None = 30,
) -> HealthCheckResult:
    """
    Execute a health check for a single model.

    Args:
        model_name: Name of the model to check
        create_client_fn: Function to create a model client
        timeout: Request timeout in seconds

    Returns:
        HealthCheckResult: Health check result
    """
    try:
        client = create_client_fn(model_name)
        response = client.generate(
            [Message(role="user", content=HEALTH_CHECK_PROMPT)], timeout=timeout
        )
    except (ProviderError, ValueError) as e:
        # ValueError: missing credentials raised by the client constructor
        return HealthCheckResult(
            model_name=model_name,
            success=False,
            latency_ms=None,
            error=str(e),
        )

    if not response.output:
        return HealthCheckResult(
            model_name=model_name,
            success=False,
            latency_ms=response.latency_ms,
            error=f"{model_name} returned an empty response",
        )
    return HealthCheckResult(
        model_name=model_name,
        success=True,
        latency_ms=response.latency_ms,
        error=None,
    )


def run_health_check(
    models: list[str],
    create_client_fn: Callable[[str], ModelClient] | None = None,
) -> tuple[list[str], list[HealthCheckResult]]:
    """
    Execute health checks for all models.

    Uses the model client factory if create_client_fn is not specified.

    Args:
        models: List of model names to check
        create_client_fn: Function to create a model client (optional)

    Returns:
        tuple: (list of available models, list of all check results)
    """
    if create_client_fn is None:
        from quality_gauge_core.infrastructure.model_clients import create_client
        create_client_fn = create_client

    print("=== Grader Health Check ===\n")
    results = []
    available_models = []

    for model_name in models:
        print(f"  {model_name}... ", end="", flush=True)
        result = health_check_model(model_name, create_client_fn)
        results.append(result)

        if result.success:
            print(f"OK ({result.latency_ms}ms)")
            available_models.append(model_name)
        else:
            # Display only the first 100 characters of the error message
            error_short = result.error[:100] if result.error else "Unknown error"
            print("FAILED")
            print(f"    Error: {error_short}")

    print()
    return available_models, results


def evaluator_status(evaluator: AIEvaluator) -> EvaluatorStatus:
    """
    Snapshot of the evaluator's circuit breaker

    Used to decide whether starting a bulk run makes sense.
    """
    return EvaluatorStatus(
        can_attempt=evaluator.can_attempt(),
        remaining_open_seconds=evaluator.get_remaining_open_time(),
        failure_count=evaluator.get_failure_count(),
    )
