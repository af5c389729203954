"""Tests for emotional transition costs and the transition engine."""

import threading

import pytest

from kore_companion.config import EmotionConfig
from kore_companion.emotion import (
    ChangeOutcome,
    EmotionalState as E,
    EmotionEngine,
    EmotionTransition,
    adjust_by_intensity,
    is_negative,
    is_positive,
    transition_cost,
)
from kore_companion.errors import InputInvalid


class TestCosts:
    @pytest.mark.parametrize("state", list(E))
    def test_same_state_is_free(self, state):
        assert transition_cost(state, state) == 0

    def test_recovery_slower_for_negative_states(self):
        assert transition_cost(E.HAPPY, E.CALM) == 30
        assert transition_cost(E.CURIOUS, E.CALM) == 30
        assert transition_cost(E.WORRIED, E.CALM) == 300
        assert transition_cost(E.SAD, E.CALM) == 600
        assert transition_cost(E.ANGRY, E.CALM) == 600

    def test_not_symmetric(self):
        assert transition_cost(E.CALM, E.SAD) == 120
        assert transition_cost(E.SAD, E.CALM) == 600

    def test_activation_is_fast(self):
        assert transition_cost(E.CALM, E.HAPPY) == 30
        assert transition_cost(E.CALM, E.SHY) == 30
        assert transition_cost(E.CALM, E.EXCITED) == 120

    def test_valence_flip_is_slow(self):
        assert transition_cost(E.HAPPY, E.SAD) == 300
        assert transition_cost(E.ANGRY, E.TOUCHED) == 300

    def test_similarity_group_is_fast(self):
        assert transition_cost(E.HAPPY, E.EXCITED) == 30
        assert transition_cost(E.TOUCHED, E.HAPPY) == 30
        assert transition_cost(E.SAD, E.WORRIED) == 30
        assert transition_cost(E.SHY, E.WORRIED) == 30

    def test_other_pairs_use_default(self):
        assert transition_cost(E.SHY, E.TIRED) == 120
        assert transition_cost(E.SAD, E.ANGRY) == 120

    def test_every_pair_has_a_cost(self):
        for a in E:
            for b in E:
                assert transition_cost(a, b) >= 0

    def test_custom_durations(self):
        config = EmotionConfig(fast_seconds=5)
        assert transition_cost(E.HAPPY, E.CALM, config) == 5

    def test_valence(self):
        assert is_positive(E.HAPPY) and not is_negative(E.HAPPY)
        assert is_negative(E.LONELY) and not is_positive(E.LONELY)
        assert not is_positive(E.CALM) and not is_negative(E.CALM)


class TestIntensity:
    def test_neutral_intensity_keeps_cost(self):
        assert adjust_by_intensity(120, 0.5) == 120

    def test_monotonic(self):
        high = [adjust_by_intensity(120, 0.5 + i / 10) for i in range(6)]
        assert high == sorted(high)
        low = [adjust_by_intensity(120, 0.5 - i / 10) for i in range(6)]
        assert low == sorted(low, reverse=True)

    def test_floor(self):
        assert adjust_by_intensity(12, 0.0) == 10
        assert adjust_by_intensity(0, 1.0, min_seconds=7) == 7


class TestTransition:
    def test_progress_and_binary_blend(self):
        t = EmotionTransition(E.CALM, E.HAPPY, 0.0, start_time=0.0,
                              estimated_end_time=100.0)
        assert t.at(25).progress == pytest.approx(0.25)
        assert t.at(50).visible_emotion is E.CALM
        assert t.at(51).visible_emotion is E.HAPPY
        assert t.at(500).progress == 1.0
        assert t.at(500).is_complete
        assert t.at(-10).progress == 0.0

    def test_zero_duration_is_complete(self):
        t = EmotionTransition(E.CALM, E.HAPPY, 0.0, start_time=5.0, estimated_end_time=5.0)
        assert t.progress_at(5.0) == 1.0


class TestEngine:
    @pytest.fixture
    def engine(self, clock):
        return EmotionEngine(clock=clock)

    def test_starts_calm(self, engine):
        assert engine.current_emotion() is E.CALM
        assert engine.signal() == 0.0

    def test_transition_completes(self, engine, clock):
        assert engine.request_change(E.HAPPY, "praised") is ChangeOutcome.STARTED
        t = engine.transition()
        assert t.estimated_end_time - t.start_time == 30
        assert engine.current_emotion() is E.CALM
        clock.advance(16)
        assert engine.current_emotion() is E.HAPPY
        clock.advance(20)
        settled = engine.update()
        assert settled.is_complete
        assert settled.current is E.HAPPY and settled.target is E.HAPPY

    def test_same_target_is_noop(self, engine):
        engine.request_change(E.HAPPY, intensity=0.8)
        assert engine.request_change(E.HAPPY) is ChangeOutcome.UNCHANGED

    def test_force_snaps(self, engine):
        assert engine.request_change(E.ANGRY, force=True) is ChangeOutcome.FORCED
        assert engine.current_emotion() is E.ANGRY
        assert engine.transition().is_complete

    def test_intensity_stretches_duration(self, engine):
        engine.request_change(E.EXCITED, intensity=1.0)
        t = engine.transition()
        assert t.estimated_end_time - t.start_time == 180

    def test_custom_duration(self, engine):
        engine.request_change(E.SAD, intensity=0.8, duration=42)
        t = engine.transition()
        assert t.estimated_end_time - t.start_time == 42

    def test_small_triggers_accumulate_then_burst(self, engine, clock):
        engine.request_change(E.ANGRY, intensity=0.9, force=True)
        assert engine.request_change(E.SAD, intensity=0.6) is ChangeOutcome.ACCUMULATED
        clock.advance(60)
        assert engine.request_change(E.SAD, intensity=0.6) is ChangeOutcome.ACCUMULATED
        acc = engine.accumulation(E.SAD)
        assert acc.count == 2
        assert acc.total_intensity == pytest.approx(1.2)
        clock.advance(60)
        assert engine.request_change(E.SAD, intensity=0.6) is ChangeOutcome.BURST
        t = engine.transition()
        assert t.target is E.SAD
        assert t.intensity == pytest.approx(0.9)
        assert engine.accumulation(E.SAD) is None

    def test_busy_transition_accumulates_low_intensity(self, engine):
        engine.request_change(E.HAPPY, intensity=0.8)
        assert engine.request_change(E.WORRIED, intensity=0.3) is ChangeOutcome.ACCUMULATED
        assert engine.transition().target is E.HAPPY

    def test_high_intensity_interrupts(self, engine):
        engine.request_change(E.HAPPY, intensity=0.8)
        assert engine.request_change(E.ANGRY, intensity=0.9) is ChangeOutcome.STARTED

    def test_accumulations_expire(self, engine, clock):
        engine.request_change(E.ANGRY, intensity=0.9, force=True)
        engine.request_change(E.SAD, intensity=0.6)
        clock.advance(2 * 3600)
        assert engine.cleanup_expired_accumulations() == 1
        assert engine.accumulation(E.SAD) is None

    def test_reset(self, engine):
        engine.request_change(E.ANGRY, force=True)
        engine.reset()
        assert engine.current_emotion() is E.CALM

    def test_invalid_intensity(self, engine):
        with pytest.raises(InputInvalid):
            engine.request_change(E.HAPPY, intensity=1.5)
        assert engine.current_emotion() is E.CALM

    def test_unknown_state(self, engine):
        with pytest.raises(InputInvalid, match="ecstatic"):
            engine.request_change("ecstatic")
        assert engine.current_emotion() is E.CALM

    def test_concurrent_requests(self, engine):
        targets = [E.HAPPY, E.SAD, E.CURIOUS, E.ANGRY] * 10

        def worker(state):
            engine.request_change(state, intensity=0.9)
            engine.update()

        threads = [threading.Thread(target=worker, args=(s,)) for s in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert engine.transition().target in set(targets)
