"""
health_check のテスト

モデルクライアントをスタブ化し、成功・失敗時の結果と
サーキットブレーカー状態のスナップショットを検証する。
"""

from quality_gauge_core.circuit_breaker import CircuitBreaker
from quality_gauge_core.domain.errors import ProviderError
from quality_gauge_core.domain.value_objects import ModelResponse
from quality_gauge_core.evaluator_config import CircuitBreakerConfig
from quality_gauge_core.scoring.ai_evaluator import AIEvaluator
from quality_gauge_core.use_cases.health_check import (
    HEALTH_CHECK_PROMPT,
    evaluator_status,
    health_check_model,
    run_health_check,
)


class StubClient:
    def __init__(self, output="OK", error=None):
        self.output = output
        self.error = error
        self.requests = []

    def generate(self, messages, *, timeout=None):
        self.requests.append((messages, timeout))
        if self.error is not None:
            raise self.error
        return ModelResponse(output=self.output, latency_ms=42, model_name="stub")


class TestHealthCheckModel:
    """health_check_model のテスト"""

    def test_success(self):
        client = StubClient()
        result = health_check_model("claude-haiku-4-5-20251001", lambda name: client)

        assert result.success is True
        assert result.latency_ms == 42
        assert result.error is None
        messages, timeout = client.requests[0]
        assert messages[0].content == HEALTH_CHECK_PROMPT
        assert timeout == 30

    def test_provider_error(self):
        client = StubClient(error=ProviderError("anthropic request failed: 401", provider="anthropic"))
        result = health_check_model("claude-haiku-4-5-20251001", lambda name: client)

        assert result.success is False
        assert result.latency_ms is None
        assert "401" in result.error

    def test_missing_credentials(self):
        """クライアント生成時の ValueError も失敗として扱う"""
        def factory(name):
            raise ValueError("ANTHROPIC_API_KEY is not set")

        result = health_check_model("claude-haiku-4-5-20251001", factory)

        assert result.success is False
        assert result.error == "ANTHROPIC_API_KEY is not set"

    def test_empty_output(self):
        result = health_check_model("gemini-2.5-flash", lambda name: StubClient(output=""))

        assert result.success is False
        assert result.error == "gemini-2.5-flash returned an empty response"


class TestRunHealthCheck:
    """run_health_check のテスト"""

    def test_available_models(self, capsys):
        clients = {
            "good-model": StubClient(),
            "bad-model": StubClient(error=ProviderError("connection refused")),
        }

        available, results = run_health_check(["good-model", "bad-model"], clients.__getitem__)

        assert available == ["good-model"]
        assert [r.success for r in results] == [True, False]
        out = capsys.readouterr().out
        assert "good-model... OK (42ms)" in out
        assert "Error: connection refused" in out

    def test_error_message_truncated(self, capsys):
        client = StubClient(error=ProviderError("x" * 300))

        run_health_check(["model"], lambda name: client)

        out = capsys.readouterr().out
        assert "x" * 100 in out
        assert "x" * 101 not in out


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestEvaluatorStatus:
    """evaluator_status のテスト"""

    def test_closed(self):
        evaluator = AIEvaluator(CircuitBreaker(CircuitBreakerConfig()))
        status = evaluator_status(evaluator)

        assert status.can_attempt is True
        assert status.remaining_open_seconds == 0
        assert status.failure_count == 0

    def test_open(self):
        clock = FakeClock()
        breaker = CircuitBreaker(
            CircuitBreakerConfig(failure_threshold=2, cooldown_seconds=30), clock=clock
        )
        breaker.record_failure()
        breaker.record_failure()
        clock.now = 10.0

        status = evaluator_status(AIEvaluator(breaker))

        assert status.can_attempt is False
        assert status.remaining_open_seconds == 20.0
        assert status.failure_count == 2
