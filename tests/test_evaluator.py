"""Tests for importance/confidence evaluation."""

import time
import warnings

import pytest

from kore_companion.errors import EvaluatorUnavailable
from kore_companion.evaluator import (
    EvaluationContext,
    EventType,
    FallbackEvaluator,
    HeuristicEvaluator,
    LLMEvaluator,
    valence_from_tag,
)


@pytest.fixture
def heuristic():
    return HeuristicEvaluator()


class TestHeuristic:
    def test_plain_chat(self, heuristic):
        result = heuristic.evaluate("we talked about the weather today")
        assert result.importance == pytest.approx(0.5)
        assert result.confidence == pytest.approx(0.7)
        assert result.method == "heuristic"

    def test_short_chatter_penalized(self, heuristic):
        assert heuristic.evaluate("ok").importance == pytest.approx(0.4)

    def test_capped_at_one(self, heuristic):
        context = EvaluationContext(event_type=EventType.PROMISE, involves_primary=True)
        result = heuristic.evaluate("promise me you will never forget my birthday", context)
        assert result.importance == 1.0

    def test_keywords_capped(self, heuristic):
        result = heuristic.evaluate("my birthday and our anniversary and the wedding")
        assert result.importance == pytest.approx(0.8)

    @pytest.mark.parametrize("intensity,expected", [(0.8, 0.7), (0.6, 0.6), (0.3, 0.5)])
    def test_emotion_intensity(self, heuristic, intensity, expected):
        context = EvaluationContext(emotion_intensity=intensity)
        result = heuristic.evaluate("we talked about the weather today", context)
        assert result.importance == pytest.approx(expected)

    def test_event_bonus(self, heuristic):
        context = EvaluationContext(event_type=EventType.FIRST_MEET)
        result = heuristic.evaluate("we met at the station downtown", context)
        assert result.importance == pytest.approx(0.8)

    def test_joke_has_low_confidence(self, heuristic):
        result = heuristic.evaluate("haha just kidding, I will move to mars")
        assert result.confidence == pytest.approx(0.3)

    def test_uncertain_statement(self, heuristic):
        result = heuristic.evaluate("maybe we can go hiking next week")
        assert result.confidence == pytest.approx(0.5)


class TestLLM:
    def test_parse_json_in_prose(self):
        result = LLMEvaluator.parse('Sure! {"importance": 0.8, "confidence": 0.9} Hope it helps.')
        assert result.importance == pytest.approx(0.8)
        assert result.confidence == pytest.approx(0.9)
        assert result.method == "llm"

    def test_parse_ten_point_scale(self):
        result = LLMEvaluator.parse('{"importance": 7}')
        assert result.importance == pytest.approx(0.7)
        assert result.confidence == pytest.approx(0.7)

    @pytest.mark.parametrize("reply", ["no idea", '{"confidence": 1}',
                                       '{"importance": "high"}', "",
                                       '{"importance": NaN}',
                                       '{"importance": 0.5, "confidence": Infinity}'])
    def test_parse_garbage(self, reply):
        with pytest.raises(EvaluatorUnavailable):
            LLMEvaluator.parse(reply)

    def test_evaluate_sends_prompt(self):
        prompts = []

        def chat(prompt):
            prompts.append(prompt)
            return '{"importance": 0.9, "confidence": 0.8}'

        evaluator = LLMEvaluator(chat)
        context = EvaluationContext(event_type=EventType.PROMISE, involves_primary=True)
        result = evaluator.evaluate("I promise to visit", context)
        evaluator.close()
        assert result.importance == pytest.approx(0.9)
        assert "I promise to visit" in prompts[0]
        assert "promise" in prompts[0]

    def test_failure_raises_unavailable(self):
        def chat(prompt):
            raise ConnectionError("model server down")

        evaluator = LLMEvaluator(chat)
        with pytest.raises(EvaluatorUnavailable):
            evaluator.evaluate("anything")
        evaluator.close()

    def test_timeout_raises_unavailable(self):
        def chat(prompt):
            time.sleep(0.5)
            return '{"importance": 0.9}'

        evaluator = LLMEvaluator(chat, timeout=0.05)
        with pytest.raises(EvaluatorUnavailable, match="timed out"):
            evaluator.evaluate("anything")
        evaluator.close()

    def test_context_manager_shuts_down_workers(self):
        with LLMEvaluator(lambda p: '{"importance": 0.3}') as evaluator:
            assert evaluator.evaluate("anything").importance == pytest.approx(0.3)
        with pytest.raises(EvaluatorUnavailable, match="closed"):
            evaluator.evaluate("anything")


class TestFallback:
    def test_primary_used_when_available(self):
        evaluator = FallbackEvaluator(LLMEvaluator(lambda p: '{"importance": 0.2}'))
        assert evaluator.evaluate("we talked about the weather today").method == "llm"

    def test_falls_back_and_warns_once(self):
        def chat(prompt):
            raise ConnectionError("model server down")

        evaluator = FallbackEvaluator(LLMEvaluator(chat))
        with pytest.warns(RuntimeWarning, match="falling back"):
            result = evaluator.evaluate("we talked about the weather today")
        assert result.method == "heuristic"
        assert result.importance == pytest.approx(0.5)

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            evaluator.evaluate("another memory about the weather")
        assert not [w for w in caught if issubclass(w.category, RuntimeWarning)]

    def test_non_finite_reply_falls_back(self):
        evaluator = FallbackEvaluator(LLMEvaluator(lambda p: '{"importance": NaN}'))
        with pytest.warns(RuntimeWarning):
            result = evaluator.evaluate("we talked about the weather today")
        assert result.method == "heuristic"
        assert result.importance == pytest.approx(0.5)
        evaluator.close()

    def test_close_reaches_primary(self):
        closed = []

        class Primary:
            def evaluate(self, content, context=None):
                raise EvaluatorUnavailable("offline")

            def close(self):
                closed.append(True)

        FallbackEvaluator(Primary()).close()
        assert closed == [True]


class TestValence:
    @pytest.mark.parametrize("tag,expected", [
        ("happy", 0.8), ("Calm", 0.5), ("sad", -0.5), ("angry", -0.8),
        ("neutral", 0.0), ("bewildered", 0.0), (None, 0.0), ("", 0.0),
    ])
    def test_tags(self, tag, expected):
        assert valence_from_tag(tag) == expected
