"""Emotional states, asymmetric transition costs and the transition engine."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from kore_companion.config import EmotionConfig
from kore_companion.errors import InputInvalid
from kore_companion.models import clamp

logger = logging.getLogger(__name__)


class EmotionalState(str, Enum):
    HAPPY = "happy"
    EXCITED = "excited"
    CALM = "calm"
    CURIOUS = "curious"
    WORRIED = "worried"
    SAD = "sad"
    ANGRY = "angry"
    SHY = "shy"
    TIRED = "tired"
    TOUCHED = "touched"
    JEALOUS = "jealous"
    DISAPPOINTED = "disappointed"
    NEGLECTED = "neglected"
    LONELY = "lonely"


class Valence(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Pace(str, Enum):
    FAST = "fast"
    DEFAULT = "default"
    SLOW = "slow"
    VERY_SLOW = "very_slow"


E = EmotionalState

_VALENCE: dict[EmotionalState, Valence] = {
    E.HAPPY: Valence.POSITIVE,
    E.EXCITED: Valence.POSITIVE,
    E.TOUCHED: Valence.POSITIVE,
    E.CURIOUS: Valence.POSITIVE,
    E.CALM: Valence.NEUTRAL,
    E.SHY: Valence.NEUTRAL,
    E.TIRED: Valence.NEUTRAL,
    E.WORRIED: Valence.NEGATIVE,
    E.SAD: Valence.NEGATIVE,
    E.ANGRY: Valence.NEGATIVE,
    E.JEALOUS: Valence.NEGATIVE,
    E.DISAPPOINTED: Valence.NEGATIVE,
    E.NEGLECTED: Valence.NEGATIVE,
    E.LONELY: Valence.NEGATIVE,
}

# Back to calm is recovery: the more negative, the slower
_RECOVERY: dict[EmotionalState, Pace] = {
    E.HAPPY: Pace.FAST,
    E.CURIOUS: Pace.FAST,
    E.EXCITED: Pace.DEFAULT,
    E.SHY: Pace.DEFAULT,
    E.TOUCHED: Pace.DEFAULT,
    E.WORRIED: Pace.SLOW,
    E.TIRED: Pace.SLOW,
    E.JEALOUS: Pace.SLOW,
    E.DISAPPOINTED: Pace.SLOW,
    E.NEGLECTED: Pace.SLOW,
    E.SAD: Pace.VERY_SLOW,
    E.ANGRY: Pace.VERY_SLOW,
    E.LONELY: Pace.VERY_SLOW,
}

# Leaving calm is activation
_ACTIVATION: dict[EmotionalState, Pace] = {
    E.HAPPY: Pace.FAST,
    E.CURIOUS: Pace.FAST,
    E.SHY: Pace.FAST,
    E.TIRED: Pace.FAST,
    E.EXCITED: Pace.DEFAULT,
    E.WORRIED: Pace.DEFAULT,
    E.SAD: Pace.DEFAULT,
    E.ANGRY: Pace.DEFAULT,
    E.TOUCHED: Pace.DEFAULT,
    E.JEALOUS: Pace.DEFAULT,
    E.DISAPPOINTED: Pace.DEFAULT,
    E.NEGLECTED: Pace.DEFAULT,
    E.LONELY: Pace.DEFAULT,
}

_SIMILAR_GROUPS: tuple[frozenset[EmotionalState], ...] = (
    frozenset({E.HAPPY, E.EXCITED, E.TOUCHED}),
    frozenset({E.SAD, E.WORRIED}),
    frozenset({E.CURIOUS, E.HAPPY}),
    frozenset({E.SHY, E.WORRIED}),
)


def _check_tables() -> None:
    states = set(EmotionalState)
    for name, table, expected in (
        ("valence", _VALENCE, states),
        ("recovery", _RECOVERY, states - {E.CALM}),
        ("activation", _ACTIVATION, states - {E.CALM}),
    ):
        if set(table) != expected:
            missing = sorted(s.value for s in expected - set(table))
            raise RuntimeError(f"{name} table does not cover emotional states: {missing}")


_check_tables()


def valence(state: EmotionalState) -> Valence:
    return _VALENCE[state]


def is_positive(state: EmotionalState) -> bool:
    return _VALENCE[state] is Valence.POSITIVE


def is_negative(state: EmotionalState) -> bool:
    return _VALENCE[state] is Valence.NEGATIVE


def _seconds(pace: Pace, config: EmotionConfig) -> int:
    return {
        Pace.FAST: config.fast_seconds,
        Pace.DEFAULT: config.default_seconds,
        Pace.SLOW: config.slow_seconds,
        Pace.VERY_SLOW: config.very_slow_seconds,
    }[pace]


def transition_pace(source: EmotionalState, target: EmotionalState) -> Pace | None:
    """Pace class of a transition, None when no transition is needed."""
    if source is target:
        return None
    if target is E.CALM:
        return _RECOVERY[source]
    if source is E.CALM:
        return _ACTIVATION[target]
    if (is_positive(source) and is_negative(target)) or (
            is_negative(source) and is_positive(target)):
        return Pace.SLOW
    if any(source in group and target in group for group in _SIMILAR_GROUPS):
        return Pace.FAST
    return Pace.DEFAULT


def transition_cost(source: EmotionalState, target: EmotionalState,
                    config: EmotionConfig | None = None) -> int:
    """Seconds needed to move from ``source`` to ``target``. Not symmetric."""
    pace = transition_pace(source, target)
    if pace is None:
        return 0
    return _seconds(pace, config or EmotionConfig())


def adjust_by_intensity(base_seconds: int, intensity: float,
                        min_seconds: int = 10) -> int:
    """Intense emotions are stubborn: scale by 1 + (intensity - 0.5), floored."""
    return max(int(base_seconds * (1 + (intensity - 0.5))), min_seconds)


# ── Transition value ───────────────────────────────────────────────────


@dataclass(frozen=True)
class EmotionTransition:
    current: EmotionalState
    target: EmotionalState
    progress: float = 1.0
    start_time: float = 0.0
    estimated_end_time: float = 0.0
    intensity: float = 0.5
    reason: str = ""

    @classmethod
    def resting(cls, state: EmotionalState, now: float,
                intensity: float = 0.5, reason: str = "") -> EmotionTransition:
        return cls(current=state, target=state, progress=1.0,
                   start_time=now, estimated_end_time=now,
                   intensity=intensity, reason=reason)

    @property
    def duration(self) -> float:
        return self.estimated_end_time - self.start_time

    @property
    def is_complete(self) -> bool:
        return self.progress >= 1.0

    def progress_at(self, now: float) -> float:
        if self.duration <= 0:
            return 1.0
        return clamp((now - self.start_time) / self.duration)

    def at(self, now: float) -> EmotionTransition:
        return replace(self, progress=self.progress_at(now))

    @property
    def visible_emotion(self) -> EmotionalState:
        """Binary blend: the source until halfway, the target after."""
        if self.is_complete or self.progress > 0.5:
            return self.target
        return self.current

    def remaining_seconds(self, now: float) -> float:
        return max(0.0, self.estimated_end_time - now)


@dataclass
class EmotionAccumulation:
    """Small triggers toward one emotion that have not yet tipped it over."""

    emotion: EmotionalState
    count: int
    first_trigger: float
    last_trigger: float
    total_intensity: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.last_trigger > ttl_seconds


class ChangeOutcome(str, Enum):
    STARTED = "started"
    FORCED = "forced"
    UNCHANGED = "unchanged"
    ACCUMULATED = "accumulated"
    BURST = "burst"


# ── Engine ─────────────────────────────────────────────────────────────


class EmotionEngine:
    """Owns the current transition and pending accumulations.

    All reads and writes go through one lock; callers get immutable snapshots.
    """

    def __init__(self, config: EmotionConfig | None = None,
                 clock: Callable[[], float] = time.time,
                 initial: EmotionalState = EmotionalState.CALM) -> None:
        self.config = config or EmotionConfig()
        self._clock = clock
        self._initial = initial
        self._lock = threading.Lock()
        self._transition = EmotionTransition.resting(initial, clock())
        self._accumulations: dict[EmotionalState, EmotionAccumulation] = {}

    def request_change(self, target: EmotionalState, reason: str = "",
                       intensity: float = 0.5, force: bool = False,
                       duration: float | None = None) -> ChangeOutcome:
        if not 0.0 <= intensity <= 1.0:
            raise InputInvalid(f"intensity must be within [0, 1], got {intensity}")
        if duration is not None and duration < 0:
            raise InputInvalid(f"duration must not be negative, got {duration}")
        try:
            target = EmotionalState(target)
        except ValueError as exc:
            raise InputInvalid(f"unknown emotional state: {target!r}") from exc
        cfg = self.config

        with self._lock:
            now = self._clock()
            current = self._settle(now)

            if force:
                self._transition = EmotionTransition.resting(target, now, intensity, reason)
                self._accumulations.pop(target, None)
                logger.debug("emotion forced to %s (%s)", target.value, reason)
                return ChangeOutcome.FORCED

            if target is current.target:
                return ChangeOutcome.UNCHANGED

            busy = not current.is_complete and current.target is not target
            stubborn = current.intensity > cfg.stubborn_above
            if intensity < cfg.accumulate_below and (busy or stubborn):
                if not self._accumulate(target, intensity, now):
                    return ChangeOutcome.ACCUMULATED
                intensity = min(intensity * cfg.burst_amplification, 1.0)
                self._start(current, target, reason or "accumulated", intensity, None, now)
                logger.debug("accumulated %s burst into a transition", target.value)
                return ChangeOutcome.BURST

            self._start(current, target, reason, intensity, duration, now)
            return ChangeOutcome.STARTED

    def update(self) -> EmotionTransition:
        """Advance progress; a finished transition becomes the resting state."""
        with self._lock:
            return self._settle(self._clock())

    def current_emotion(self) -> EmotionalState:
        return self.update().visible_emotion

    def transition(self) -> EmotionTransition:
        return self.update()

    def signal(self) -> float:
        """Emotion input for the decision scorer: intensity of any non-calm emotion."""
        snapshot = self.update()
        if snapshot.visible_emotion is EmotionalState.CALM:
            return 0.0
        return snapshot.intensity

    def accumulation(self, emotion: EmotionalState) -> EmotionAccumulation | None:
        with self._lock:
            acc = self._accumulations.get(emotion)
            return replace(acc) if acc is not None else None

    def cleanup_expired_accumulations(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [e for e, acc in self._accumulations.items()
                       if acc.is_expired(now, self.config.accumulation_ttl_seconds)]
            for emotion in expired:
                del self._accumulations[emotion]
            return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._transition = EmotionTransition.resting(self._initial, self._clock())
            self._accumulations.clear()

    # ── internals (lock held) ──────────────────────────────────────────

    def _settle(self, now: float) -> EmotionTransition:
        current = self._transition.at(now)
        if current.is_complete and current.current is not current.target:
            current = replace(current, current=current.target)
            logger.debug("emotion settled on %s", current.target.value)
        self._transition = current
        return current

    def _start(self, current: EmotionTransition, target: EmotionalState,
               reason: str, intensity: float, duration: float | None,
               now: float) -> None:
        source = current.visible_emotion
        if duration is None:
            base = transition_cost(source, target, self.config)
            duration = adjust_by_intensity(base, intensity, self.config.min_seconds) if base else 0
        transition = EmotionTransition(
            current=source, target=target, progress=0.0,
            start_time=now, estimated_end_time=now + duration,
            intensity=intensity, reason=reason,
        )
        self._transition = transition.at(now)
        self._accumulations.pop(target, None)
        logger.debug("emotion %s -> %s over %.0fs", source.value, target.value, duration)

    def _accumulate(self, target: EmotionalState, intensity: float, now: float) -> bool:
        """Record a trigger. True when the accumulation bursts."""
        cfg = self.config
        acc = self._accumulations.get(target)
        if acc is None or acc.is_expired(now, cfg.accumulation_ttl_seconds):
            acc = EmotionAccumulation(target, 1, now, now, intensity)
            self._accumulations[target] = acc
        else:
            acc.count += 1
            acc.last_trigger = now
            acc.total_intensity += intensity
        return (acc.count >= cfg.burst_count
                and acc.last_trigger - acc.first_trigger <= cfg.burst_window_seconds
                and acc.total_intensity >= cfg.burst_intensity)

    def __repr__(self) -> str:
        t = self._transition
        return f"EmotionEngine({t.current.value}->{t.target.value}, progress={t.progress:.2f})"
