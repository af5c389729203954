"""Tests for signal fusion and speak decisions."""

import asyncio

import pytest

from kore_companion.config import DecisionConfig, DecisionWeights
from kore_companion.decision import (
    DecisionScorer,
    Factor,
    RelationTier,
    Signals,
    SpeakPriority,
    SpeakTiming,
    dominant_factor,
    gather_signals,
    signals_from,
)
from kore_companion.errors import InputInvalid


@pytest.fixture
def scorer():
    return DecisionScorer()


def uniform(value, **flags):
    return Signals(time=value, emotion=value, relation=value, context=value,
                   curiosity=value, urgency=value, **flags)


class TestScore:
    def test_all_high_inputs(self, scorer):
        decision = scorer.evaluate(uniform(0.9))
        assert decision.scores.overall == pytest.approx(0.9)
        assert decision.should_speak
        assert decision.priority in (SpeakPriority.HIGH, SpeakPriority.URGENT)
        assert decision.confidence == pytest.approx(0.95)

    def test_weighted_sum(self, scorer):
        s = Signals(time=1.0, emotion=0.0, relation=0.5, context=0.2,
                    curiosity=0.4, urgency=0.0)
        expected = 0.2 * 1.0 + 0.25 * 0.5 + 0.15 * 0.2 + 0.1 * 0.4
        assert scorer.score(s).overall == pytest.approx(expected)

    def test_custom_weights(self):
        weights = DecisionWeights(time=0.0, emotion=1.0, relation=0.0, context=0.0,
                                  curiosity=0.0, urgency=0.0)
        scorer = DecisionScorer(DecisionConfig(weights=weights))
        assert scorer.score(Signals(emotion=0.7)).overall == pytest.approx(0.7)

    def test_weights_must_sum_to_one(self):
        with pytest.raises(InputInvalid):
            DecisionScorer(DecisionConfig(weights=DecisionWeights(time=0.5)))

    def test_attention_gap_raises_relation(self, scorer):
        plain = scorer.score(Signals(relation=0.5))
        neglected = scorer.score(Signals(relation=0.5, attention_gap=1.0))
        assert neglected.relation_score == pytest.approx(0.7)
        assert neglected.overall > plain.overall

    def test_out_of_range_signal_rejected(self):
        with pytest.raises(InputInvalid):
            Signals(emotion=1.2)
        with pytest.raises(InputInvalid):
            Signals(urgency=-0.1)

    def test_unknown_tier_rejected(self, scorer):
        with pytest.raises(InputInvalid, match="boss"):
            Signals(tier="boss")
        with pytest.raises(InputInvalid):
            scorer.threshold("boss")
        assert scorer.threshold("friend") == 0.75

    def test_nan_signal_rejected(self):
        with pytest.raises(InputInvalid):
            Signals(emotion=float("nan"))

    def test_confidence_drops_when_signals_disagree(self, scorer):
        steady = scorer.score(uniform(0.6))
        split = scorer.score(Signals(time=1.0, emotion=0.2, relation=1.0, context=0.2,
                                     curiosity=1.0, urgency=0.2))
        assert split.confidence < steady.confidence


class TestDominantFactor:
    def test_max_wins(self, scorer):
        assert scorer.score(Signals(curiosity=0.8, time=0.3)).dominant_factor is Factor.CURIOSITY

    def test_tie_order(self):
        values = {f: 0.5 for f in Factor}
        assert dominant_factor(values) is Factor.URGENCY
        values[Factor.URGENCY] = 0.1
        assert dominant_factor(values) is Factor.EMOTION
        values[Factor.EMOTION] = 0.1
        values[Factor.RELATION] = 0.1
        values[Factor.CONTEXT] = 0.1
        assert dominant_factor(values) is Factor.CURIOSITY

    def test_reason_names_dominant_factor(self, scorer):
        decision = scorer.evaluate(Signals(emotion=1.0, relation=1.0, time=1.0,
                                           context=1.0, tier=RelationTier.PRIMARY))
        assert decision.dominant_factor is Factor.EMOTION
        assert decision.reason.startswith("emotion")


class TestThresholds:
    @pytest.mark.parametrize("tier,value,speaks", [
        (RelationTier.PRIMARY, 0.66, True),
        (RelationTier.FRIEND, 0.66, False),
        (RelationTier.FRIEND, 0.76, True),
        (RelationTier.STRANGER, 0.8, False),
        (RelationTier.STRANGER, 0.86, True),
    ])
    def test_tier_thresholds(self, scorer, tier, value, speaks):
        decision = scorer.evaluate(uniform(value, tier=tier))
        assert decision.should_speak is speaks

    def test_never_speaks_below_threshold(self, scorer):
        for step in range(21):
            value = step / 20
            for tier in RelationTier:
                decision = scorer.evaluate(uniform(value, tier=tier))
                if decision.scores.overall < scorer.threshold(tier):
                    assert not decision.should_speak
                    assert decision.timing is SpeakTiming.DONT_SPEAK


class TestTiming:
    def base(self, **overrides):
        values = dict(time=0.8, emotion=0.8, relation=0.8, context=0.8,
                      curiosity=0.8, urgency=0.6, tier=RelationTier.PRIMARY)
        values.update(overrides)
        return Signals(**values)

    def test_named_is_immediate_and_urgent(self, scorer):
        decision = scorer.evaluate(self.base(named=True, conversation_active=True))
        assert decision.timing is SpeakTiming.IMMEDIATE
        assert decision.priority is SpeakPriority.URGENT
        assert decision.suggested_wait_ms == 0

    def test_active_conversation_waits_for_gap(self, scorer):
        decision = scorer.evaluate(self.base(conversation_active=True))
        assert decision.timing is SpeakTiming.WAIT_FOR_GAP
        assert decision.suggested_wait_ms == 500

    def test_noisy_gap_waits_longer(self, scorer):
        decision = scorer.evaluate(self.base(conversation_active=True, noise=0.8))
        assert decision.suggested_wait_ms == 2000

    def test_low_urgency_waits_for_opportunity(self, scorer):
        decision = scorer.evaluate(self.base(urgency=0.1, emotion=0.5))
        assert decision.timing is SpeakTiming.WAIT_FOR_OPPORTUNITY
        assert decision.priority is SpeakPriority.LOW
        assert decision.suggested_wait_ms == 5000

    def test_otherwise_immediate(self, scorer):
        decision = scorer.evaluate(self.base())
        assert decision.timing is SpeakTiming.IMMEDIATE
        assert decision.priority is SpeakPriority.HIGH

    def test_tired_companion_defers(self, scorer):
        decision = scorer.evaluate(self.base(needs_rest=True))
        assert decision.timing is SpeakTiming.WAIT_FOR_OPPORTUNITY

    def test_normal_priority(self, scorer):
        decision = scorer.evaluate(self.base(emotion=0.6, relation=1.0, time=1.0,
                                             context=1.0, urgency=0.6))
        assert decision.timing is SpeakTiming.IMMEDIATE
        assert decision.priority is SpeakPriority.NORMAL


class TestGatherSignals:
    def test_all_succeed(self):
        async def emotion():
            return 0.4

        async def relation():
            await asyncio.sleep(0)
            return 0.9

        values = asyncio.run(gather_signals({"emotion": emotion, "relation": relation}))
        assert values == {"emotion": 0.4, "relation": 0.9}

    def test_failures_degrade_to_defaults(self):
        async def broken():
            raise ConnectionError("identity service down")

        async def slow():
            await asyncio.sleep(5)
            return 1.0

        async def garbage():
            return "lots"

        values = asyncio.run(gather_signals(
            {"relation": broken, "context": slow, "curiosity": garbage},
            defaults={"relation": 0.3},
            timeout=0.05,
        ))
        assert values == {"relation": 0.3, "context": 0.0, "curiosity": 0.0}

    def test_non_finite_values_use_defaults(self):
        async def nan():
            return float("nan")

        async def inf():
            return float("inf")

        values = asyncio.run(gather_signals({"time": nan, "urgency": inf},
                                            defaults={"time": 0.4}))
        assert values == {"time": 0.4, "urgency": 0.0}

    def test_values_are_clamped(self):
        async def loud():
            return 3.0

        assert asyncio.run(gather_signals({"urgency": loud})) == {"urgency": 1.0}

    def test_signals_from(self):
        s = signals_from({"emotion": 0.5}, tier=RelationTier.FRIEND)
        assert s.emotion == 0.5 and s.tier is RelationTier.FRIEND
        with pytest.raises(InputInvalid):
            signals_from({"mood": 0.5})
