"""
AIEvaluator のテスト

スタブのモデルクライアントとスリープ記録用スタブで、リトライ予算、
会話リトライ、使用量の集計と分配、サーキットブレーカー連携、
キャンセルを検証する。
"""

import json
import threading

import pytest

from quality_gauge_core.circuit_breaker import CircuitBreaker
from quality_gauge_core.domain.entities import ModelConfig, MultiLanguageRelatedKey, RelatedKey, TargetTranslation
from quality_gauge_core.domain.errors import (
    CircuitOpenError,
    EvaluationCancelledError,
    ProviderError,
    RetriesExhaustedError,
)
from quality_gauge_core.domain.value_objects import ModelResponse
from quality_gauge_core.evaluator_config import CircuitBreakerConfig, ConversationConfig, RetryConfig
from quality_gauge_core.prompt_builder import MQM_MULTI_LANGUAGE_SYSTEM_PROMPT, MQM_SYSTEM_PROMPT
from quality_gauge_core.retry_policy import RetryPolicy
from quality_gauge_core.scoring.ai_evaluator import AIEvaluator, split_evenly


# ---------------------------------------------------------------------------
# Stubs
# ---------------------------------------------------------------------------

def _score(accuracy=90, fluency=85, terminology=80, issues=None):
    return {"accuracy": accuracy, "fluency": fluency, "terminology": terminology, "issues": issues or []}


def _single_json(**kwargs):
    return json.dumps(_score(**kwargs))


def _multi_json(*languages):
    return json.dumps({"evaluations": {lang: _score() for lang in languages}})


class ScriptedClient:
    """台本どおりに応答（文字列）または例外を返すモデルクライアント"""

    def __init__(self, script, input_tokens=0, output_tokens=0, cache_read=0, cache_creation=0):
        self._script = list(script)
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.cache_read = cache_read
        self.cache_creation = cache_creation
        self.calls = []

    @property
    def call_count(self):
        return len(self.calls)

    def generate(self, messages, *, timeout=None):
        self.calls.append({"messages": list(messages), "timeout": timeout})
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, Exception):
            raise item
        input_tokens = self.input_tokens(len(self.calls)) if callable(self.input_tokens) else self.input_tokens
        return ModelResponse(
            output=item,
            latency_ms=10,
            model_name="stub",
            input_tokens=input_tokens,
            output_tokens=self.output_tokens,
            cache_read_tokens=self.cache_read,
            cache_creation_tokens=self.cache_creation,
        )


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _make_evaluator(max_retries=3, threshold=5, max_messages=10, clock=None):
    slept = []
    breaker_clock = clock or FakeClock()
    breaker = CircuitBreaker(
        CircuitBreakerConfig(failure_threshold=threshold, cooldown_seconds=30.0, failure_window_seconds=None),
        clock=breaker_clock,
    )
    policy = RetryPolicy(
        RetryConfig(max_retries=max_retries, initial_delay_seconds=1.0, max_delay_seconds=10.0, multiplier=2.0),
        sleep=slept.append,
    )
    evaluator = AIEvaluator(
        breaker,
        policy,
        ConversationConfig(max_conversation_messages=max_messages),
        clock=breaker_clock,
    )
    return evaluator, slept


TARGETS = [
    TargetTranslation("de", "Hallo"),
    TargetTranslation("fr", "Bonjour"),
    TargetTranslation("ja", "こんにちは"),
]


def _evaluate_multi(evaluator, client, targets=TARGETS, prompt_caching=False, **kwargs):
    return evaluator.evaluate_multi_language(
        "greeting.hello",
        "Hello",
        "en",
        targets,
        [],
        ModelConfig(client=client, prompt_caching=prompt_caching),
        **kwargs,
    )


def _evaluate_single(evaluator, client, prompt_caching=False, **kwargs):
    return evaluator.evaluate_single(
        "greeting.hello",
        "Hello",
        "Hallo",
        "en",
        "de",
        [],
        ModelConfig(client=client, prompt_caching=prompt_caching),
        **kwargs,
    )


# ===========================================================================
# split_evenly
# ===========================================================================


class TestSplitEvenly:
    def test_even(self):
        assert split_evenly(150, 3) == [50, 50, 50]

    def test_remainder_goes_to_first_parts(self):
        assert split_evenly(10, 3) == [4, 3, 3]
        assert split_evenly(11, 3) == [4, 4, 3]

    def test_sum_is_preserved(self):
        for total in range(0, 50):
            assert sum(split_evenly(total, 7)) == total

    def test_zero_parts(self):
        assert split_evenly(10, 0) == []


# ===========================================================================
# evaluate_single
# ===========================================================================


class TestEvaluateSingle:
    """単一言語評価"""

    def test_success_on_first_attempt(self):
        evaluator, slept = _make_evaluator()
        client = ScriptedClient([_single_json()], input_tokens=120, output_tokens=30)

        result = _evaluate_single(evaluator, client)

        assert result.score.accuracy == 90
        assert result.usage.input_tokens == 120
        assert result.usage.output_tokens == 30
        assert client.call_count == 1
        assert slept == []

    def test_messages(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_single_json()])
        _evaluate_single(evaluator, client, prompt_caching=True)

        system, user = client.calls[0]["messages"]
        assert system.role == "system"
        assert system.content == MQM_SYSTEM_PROMPT
        assert system.cache_control is True
        assert user.role == "user"
        assert 'Target (de): "Hallo"' in user.content

    def test_blind_retry_then_success(self):
        """パース失敗後は同じメッセージで再試行する"""
        evaluator, slept = _make_evaluator()
        client = ScriptedClient(["not json", _single_json()], input_tokens=10, output_tokens=5)

        result = _evaluate_single(evaluator, client)

        assert result.score.fluency == 85
        assert client.call_count == 2
        assert client.calls[0]["messages"] == client.calls[1]["messages"]
        # The result reports the successful call's usage only
        assert result.usage.input_tokens == 10
        assert slept == [1.0]

    def test_exhaustion_makes_exactly_max_retries_calls(self):
        evaluator, slept = _make_evaluator(max_retries=3)
        client = ScriptedClient(["garbage"])

        with pytest.raises(RetriesExhaustedError, match="Failed to get valid JSON after 3 attempts") as exc_info:
            _evaluate_single(evaluator, client)

        assert client.call_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_response == "garbage"
        assert slept == [1.0, 2.0]

    def test_exhaustion_reports_usage_of_every_turn(self):
        evaluator, _ = _make_evaluator(max_retries=2)
        client = ScriptedClient(["garbage"], input_tokens=40, output_tokens=4)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            _evaluate_single(evaluator, client)

        assert exc_info.value.usage.input_tokens == 80
        assert exc_info.value.usage.output_tokens == 8

    def test_provider_error_consumes_attempt(self):
        evaluator, _ = _make_evaluator(max_retries=3)
        client = ScriptedClient([ProviderError("503"), _single_json()])

        result = _evaluate_single(evaluator, client)

        assert result.score.accuracy == 90
        assert client.call_count == 2

    def test_does_not_touch_circuit_breaker(self):
        evaluator, _ = _make_evaluator(max_retries=1, threshold=1)
        client = ScriptedClient(["garbage"])

        with pytest.raises(RetriesExhaustedError):
            _evaluate_single(evaluator, client)

        assert evaluator.get_failure_count() == 0
        assert evaluator.can_attempt() is True

    def test_runs_while_circuit_is_open(self):
        evaluator, _ = _make_evaluator(threshold=1)
        evaluator.circuit_breaker.record_failure()
        assert evaluator.can_attempt() is False

        result = _evaluate_single(evaluator, ScriptedClient([_single_json()]))
        assert result.score.accuracy == 90

    def test_cache_metrics_only_when_caching_enabled(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_single_json()], cache_read=40, cache_creation=60)

        without_cache = _evaluate_single(evaluator, client)
        with_cache = _evaluate_single(evaluator, client, prompt_caching=True)

        assert without_cache.cache_metrics.cache_read_tokens == 0
        assert with_cache.cache_metrics.cache_read_tokens == 40
        assert with_cache.cache_metrics.cache_creation_tokens == 60

    def test_related_keys_are_sent(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_single_json()])
        related = [RelatedKey("greeting.bye", "Bye", "Tschüss", relationship_type="NEARBY")]

        evaluator.evaluate_single(
            "greeting.hello", "Hello", "Hallo", "en", "de", related, ModelConfig(client=client)
        )

        assert '<related_key name="greeting.bye" type="NEARBY">' in client.calls[0]["messages"][1].content


# ===========================================================================
# evaluate_multi_language
# ===========================================================================


class TestEvaluateMultiLanguage:
    """多言語評価（会話リトライ）"""

    def test_all_languages(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("de", "fr", "ja")], input_tokens=300, output_tokens=90)

        results = _evaluate_multi(evaluator, client)

        assert list(results) == ["de", "fr", "ja"]
        assert results["de"].usage.input_tokens == 100
        assert results["ja"].usage.output_tokens == 30

    def test_partial_response_returns_present_languages(self):
        """3言語要求で2言語のみ返答された場合、2言語分の結果を返す"""
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("de", "fr")], input_tokens=100, output_tokens=11)

        results = _evaluate_multi(evaluator, client)

        assert set(results) == {"de", "fr"}
        assert client.call_count == 1
        # Usage is split across the returned languages only
        assert sum(r.usage.input_tokens for r in results.values()) == 100
        assert [results["de"].usage.output_tokens, results["fr"].usage.output_tokens] == [6, 5]

    def test_usage_accumulates_across_turns(self):
        """1ターン目50トークン（パース失敗）、2ターン目100トークン（成功）で合計150"""
        evaluator, _ = _make_evaluator()
        client = ScriptedClient(
            ["not json", _multi_json("de", "fr", "ja")],
            input_tokens=lambda call: 50 if call == 1 else 100,
        )

        results = _evaluate_multi(evaluator, client)

        assert sum(r.usage.input_tokens for r in results.values()) == 150
        assert [r.usage.input_tokens for r in results.values()] == [50, 50, 50]

    def test_cache_metrics_accumulate_when_enabled(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient(["oops", _multi_json("de", "fr")], cache_read=7, cache_creation=3)

        results = _evaluate_multi(evaluator, client, targets=TARGETS[:2], prompt_caching=True)

        assert sum(r.cache_metrics.cache_read_tokens for r in results.values()) == 14
        assert sum(r.cache_metrics.cache_creation_tokens for r in results.values()) == 6

    def test_cache_metrics_zero_when_disabled(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("de")], cache_read=7, cache_creation=3)

        results = _evaluate_multi(evaluator, client, targets=TARGETS[:1])

        assert results["de"].cache_metrics.cache_read_tokens == 0
        assert results["de"].cache_metrics.cache_creation_tokens == 0

    def test_conversation_grows_with_feedback(self):
        """パース失敗時はアシスタント応答とエラーフィードバックを会話に追加する"""
        evaluator, slept = _make_evaluator()
        client = ScriptedClient(["I think it's fine", _multi_json("de", "fr", "ja")])

        _evaluate_multi(evaluator, client, prompt_caching=True)

        first = client.calls[0]["messages"]
        second = client.calls[1]["messages"]
        assert [m.role for m in first] == ["system", "user"]
        assert first[0].content == MQM_MULTI_LANGUAGE_SYSTEM_PROMPT
        assert first[0].cache_control is True
        assert [m.role for m in second] == ["system", "user", "assistant", "user"]
        assert second[2].content == "I think it's fine"
        assert second[3].content == (
            "<validation_error>\nNo JSON object found in response\n</validation_error>\n\n"
            "Please fix the JSON and try again. Return ONLY the corrected JSON."
        )
        assert slept == [1.0]

    def test_feedback_names_the_failing_path(self):
        evaluator, _ = _make_evaluator()
        bad = json.dumps({"evaluations": {"de": dict(_score(), accuracy="high")}})
        client = ScriptedClient([bad, _multi_json("de")])

        _evaluate_multi(evaluator, client, targets=TARGETS[:1])

        feedback = client.calls[1]["messages"][-1].content
        assert "Path: evaluations.de.accuracy, Error: Expected number, received 'high'" in feedback

    def test_missing_all_requested_languages_is_retried(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("es"), _multi_json("de")])

        results = _evaluate_multi(evaluator, client, targets=TARGETS[:1])

        assert list(results) == ["de"]
        assert client.call_count == 2

    def test_provider_error_resends_same_conversation(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([ProviderError("overloaded"), _multi_json("de")])

        _evaluate_multi(evaluator, client, targets=TARGETS[:1])

        assert client.call_count == 2
        assert client.calls[0]["messages"] == client.calls[1]["messages"]

    def test_exhaustion_makes_exactly_max_retries_calls(self):
        evaluator, slept = _make_evaluator(max_retries=4)
        client = ScriptedClient(["nope"])

        with pytest.raises(RetriesExhaustedError, match="after 4 attempts"):
            _evaluate_multi(evaluator, client)

        assert client.call_count == 4
        assert slept == [1.0, 2.0, 4.0]

    def test_exhaustion_reports_usage_of_every_turn(self):
        """失敗したターンも課金されるため、使用量を例外に載せる"""
        evaluator, _ = _make_evaluator(max_retries=3)
        client = ScriptedClient(["nope"], input_tokens=100, output_tokens=10, cache_read=5)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            _evaluate_multi(evaluator, client, prompt_caching=True)

        assert exc_info.value.usage.input_tokens == 300
        assert exc_info.value.usage.output_tokens == 30
        assert exc_info.value.cache_metrics.cache_read_tokens == 15

    def test_empty_translations_rejected_before_any_call(self):
        """翻訳が空の場合はプロバイダを呼ばず、ブレーカーにも記録しない"""
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("de")])

        with pytest.raises(ValueError, match="At least one target translation is required"):
            _evaluate_multi(evaluator, client, targets=[])
        with pytest.raises(ValueError):
            _evaluate_multi(evaluator, client, targets={})

        assert client.call_count == 0
        assert evaluator.get_failure_count() == 0

    def test_cache_tokens_billed_as_input_when_caching_disabled(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("de")], input_tokens=20, cache_read=80)

        results = _evaluate_multi(evaluator, client, targets=TARGETS[:1])

        assert results["de"].usage.input_tokens == 100
        assert results["de"].cache_metrics.cache_read_tokens == 0

    def test_history_is_capped(self):
        """会話履歴は上限を超えると最初のユーザーメッセージ＋直近のメッセージに切り詰める"""
        evaluator, _ = _make_evaluator(max_retries=5, max_messages=4)
        client = ScriptedClient(["bad 1", "bad 2", "bad 3", _multi_json("de")])

        _evaluate_multi(evaluator, client, targets=TARGETS[:1])

        last = client.calls[-1]["messages"]
        # system + original request + most recent assistant/feedback pair
        assert [m.role for m in last] == ["system", "user", "assistant", "user"]
        assert last[1].content.startswith("<evaluation_request>")
        assert last[2].content == "bad 3"

    def test_accepts_mapping_of_translations(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("de", "fr")])

        results = _evaluate_multi(evaluator, client, targets={"de": "Hallo", "fr": "Bonjour"})

        assert list(results) == ["de", "fr"]
        assert '<translation lang="fr">Bonjour</translation>' in client.calls[0]["messages"][1].content

    def test_related_keys_in_request(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("de")])
        related = [
            MultiLanguageRelatedKey(
                "greeting.bye", "Bye", {"de": "Tschüss", "fr": "Au revoir"},
                relationship_type="NEARBY", confidence=0.9, is_approved=True,
            )
        ]

        evaluator.evaluate_multi_language(
            "greeting.hello", "Hello", "en", TARGETS[:1], related, ModelConfig(client=client)
        )

        content = client.calls[0]["messages"][1].content
        assert 'confidence="0.90"' in content
        assert '<translation lang="de">Tschüss</translation>' in content
        # Only evaluated languages are included
        assert "Au revoir" not in content


# ===========================================================================
# サーキットブレーカー連携
# ===========================================================================


class TestCircuitBreakerIntegration:
    """多言語評価とサーキットブレーカー"""

    def test_success_records_success(self):
        evaluator, _ = _make_evaluator(threshold=3)
        evaluator.circuit_breaker.record_failure()
        evaluator.circuit_breaker.record_failure()

        _evaluate_multi(evaluator, ScriptedClient([_multi_json("de")]), targets=TARGETS[:1])

        assert evaluator.get_failure_count() == 0

    def test_exhaustion_records_one_failure(self):
        evaluator, _ = _make_evaluator(max_retries=3, threshold=5)

        with pytest.raises(RetriesExhaustedError):
            _evaluate_multi(evaluator, ScriptedClient(["bad"]))

        assert evaluator.get_failure_count() == 1

    def test_fourth_call_fails_fast_after_three_exhausted_calls(self):
        """閾値3で3回失敗した後、4回目はプロバイダを呼ばずに即座に失敗する"""
        evaluator, _ = _make_evaluator(max_retries=2, threshold=3)
        client = ScriptedClient(["bad"])

        for _ in range(3):
            with pytest.raises(RetriesExhaustedError):
                _evaluate_multi(evaluator, client)
        calls_before = client.call_count
        assert calls_before == 6

        with pytest.raises(CircuitOpenError, match="Circuit breaker is open") as exc_info:
            _evaluate_multi(evaluator, client)

        assert client.call_count == calls_before
        assert exc_info.value.remaining_seconds == pytest.approx(30.0)
        assert "Retry after 30s" in str(exc_info.value)

    def test_allows_call_after_cooldown(self):
        clock = FakeClock()
        evaluator, _ = _make_evaluator(max_retries=1, threshold=1, clock=clock)
        with pytest.raises(RetriesExhaustedError):
            _evaluate_multi(evaluator, ScriptedClient(["bad"]))
        assert evaluator.can_attempt() is False

        clock.now += 30.0
        results = _evaluate_multi(evaluator, ScriptedClient([_multi_json("de")]), targets=TARGETS[:1])

        assert list(results) == ["de"]
        assert evaluator.can_attempt() is True
        assert evaluator.get_remaining_open_time() == 0.0


# ===========================================================================
# キャンセル / タイムアウト
# ===========================================================================


class TestCancellation:
    """キャンセルとデッドライン"""

    def test_cancel_event_before_start(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("de")])
        event = threading.Event()
        event.set()

        with pytest.raises(EvaluationCancelledError) as exc_info:
            _evaluate_multi(evaluator, client, cancel_event=event)

        assert client.call_count == 0
        assert exc_info.value.attempts == 0

    def test_cancel_after_failed_turn_reports_partial_usage(self):
        """キャンセル時はそれまでのターンの使用量を保持し、ブレーカーには記録しない"""
        evaluator, _ = _make_evaluator(threshold=1)
        event = threading.Event()

        class CancellingClient(ScriptedClient):
            def generate(self, messages, *, timeout=None):
                response = super().generate(messages, timeout=timeout)
                event.set()
                return response

        client = CancellingClient(["bad"], input_tokens=42, output_tokens=8)

        with pytest.raises(EvaluationCancelledError) as exc_info:
            _evaluate_multi(evaluator, client, cancel_event=event)

        assert client.call_count == 1
        assert exc_info.value.usage.input_tokens == 42
        assert exc_info.value.usage.output_tokens == 8
        assert evaluator.get_failure_count() == 0

    def test_deadline_expired_between_attempts(self):
        clock = FakeClock()
        evaluator, _ = _make_evaluator(clock=clock)

        class SlowClient(ScriptedClient):
            def generate(self, messages, *, timeout=None):
                clock.now += 10.0
                return super().generate(messages, timeout=timeout)

        client = SlowClient(["bad"])

        with pytest.raises(EvaluationCancelledError, match="timed out"):
            _evaluate_single(evaluator, client, timeout=5.0)

        assert client.call_count == 1

    def test_remaining_deadline_passed_to_provider(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("de")])

        _evaluate_multi(evaluator, client, targets=TARGETS[:1], timeout=12.5)

        assert client.calls[0]["timeout"] == pytest.approx(12.5)

    def test_no_timeout_by_default(self):
        evaluator, _ = _make_evaluator()
        client = ScriptedClient([_multi_json("de")])

        _evaluate_multi(evaluator, client, targets=TARGETS[:1])

        assert client.calls[0]["timeout"] is None
