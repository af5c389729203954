"""Speak decisions: six normalized signals -> Scores -> SpeakDecision."""

from __future__ import annotations

import asyncio
import logging
import math
import statistics
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Mapping

from kore_companion.config import DecisionConfig
from kore_companion.errors import InputInvalid
from kore_companion.models import clamp

logger = logging.getLogger(__name__)

SignalProvider = Callable[[], Awaitable[float]]
SIGNAL_NAMES = ("time", "emotion", "relation", "context", "curiosity", "urgency")


class RelationTier(str, Enum):
    PRIMARY = "primary"    # the bonded user
    FRIEND = "friend"
    STRANGER = "stranger"


def relation_tier(value: str | RelationTier) -> RelationTier:
    try:
        return RelationTier(value)
    except ValueError as exc:
        raise InputInvalid(f"unknown relation tier: {value!r}") from exc


class Factor(str, Enum):
    """Declaration order is the tie-break order for the dominant factor."""

    URGENCY = "urgency"
    EMOTION = "emotion"
    RELATION = "relation"
    CONTEXT = "context"
    CURIOSITY = "curiosity"
    TIME = "time"


class SpeakTiming(str, Enum):
    IMMEDIATE = "immediate"
    WAIT_FOR_GAP = "wait_for_gap"
    WAIT_FOR_OPPORTUNITY = "wait_for_opportunity"
    DONT_SPEAK = "dont_speak"


class SpeakPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


@dataclass
class Signals:
    """One perception tick's inputs. The six scalars are already in [0, 1]."""

    time: float = 0.0
    emotion: float = 0.0
    relation: float = 0.0
    context: float = 0.0
    curiosity: float = 0.0
    urgency: float = 0.0
    tier: RelationTier = RelationTier.STRANGER
    named: bool = False
    conversation_active: bool = False
    noise: float = 0.0
    attention_gap: float = 0.0
    needs_rest: bool = False

    def __post_init__(self) -> None:
        self.tier = relation_tier(self.tier)
        for name in ("time", "emotion", "relation", "context", "curiosity",
                     "urgency", "noise", "attention_gap"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InputInvalid(f"signal {name} must be within [0, 1], got {value}")


@dataclass(frozen=True)
class Scores:
    time_score: float
    emotion_score: float
    relation_score: float
    context_score: float
    curiosity_score: float
    urgency_score: float
    overall: float
    confidence: float
    dominant_factor: Factor
    tier: RelationTier = RelationTier.STRANGER
    named: bool = False
    conversation_active: bool = False
    noise: float = 0.0
    needs_rest: bool = False

    def factor_value(self, factor: Factor) -> float:
        return getattr(self, f"{factor.value}_score")

    def as_dict(self) -> dict[str, float]:
        return {f.value: self.factor_value(f) for f in Factor}


@dataclass(frozen=True)
class SpeakDecision:
    should_speak: bool
    timing: SpeakTiming
    priority: SpeakPriority
    confidence: float
    reason: str
    dominant_factor: Factor
    threshold: float
    suggested_wait_ms: int
    scores: Scores


class DecisionScorer:
    """Pure scoring: no I/O, no shared state. Safe to call from any thread."""

    def __init__(self, config: DecisionConfig | None = None) -> None:
        self.config = config or DecisionConfig()
        self.config.validate()

    def threshold(self, tier: RelationTier) -> float:
        cfg = self.config
        return {
            RelationTier.PRIMARY: cfg.primary_threshold,
            RelationTier.FRIEND: cfg.friend_threshold,
            RelationTier.STRANGER: cfg.stranger_threshold,
        }[relation_tier(tier)]

    # ── Signals -> Scores ──────────────────────────────────────────────

    def score(self, signals: Signals) -> Scores:
        w = self.config.weights
        relation = clamp(signals.relation
                         + self.config.interaction_gap_weight * signals.attention_gap)
        values = {
            Factor.TIME: signals.time,
            Factor.EMOTION: signals.emotion,
            Factor.RELATION: relation,
            Factor.CONTEXT: signals.context,
            Factor.CURIOSITY: signals.curiosity,
            Factor.URGENCY: signals.urgency,
        }
        overall = clamp(
            w.time * values[Factor.TIME]
            + w.emotion * values[Factor.EMOTION]
            + w.relation * values[Factor.RELATION]
            + w.context * values[Factor.CONTEXT]
            + w.curiosity * values[Factor.CURIOSITY]
            + w.urgency * values[Factor.URGENCY]
        )
        return Scores(
            time_score=values[Factor.TIME],
            emotion_score=values[Factor.EMOTION],
            relation_score=relation,
            context_score=values[Factor.CONTEXT],
            curiosity_score=values[Factor.CURIOSITY],
            urgency_score=values[Factor.URGENCY],
            overall=overall,
            confidence=self._confidence(overall, list(values.values())),
            dominant_factor=dominant_factor(values),
            tier=signals.tier,
            named=signals.named,
            conversation_active=signals.conversation_active,
            noise=signals.noise,
            needs_rest=signals.needs_rest,
        )

    @staticmethod
    def _confidence(overall: float, values: list[float]) -> float:
        """High when signals are strong and agree, low when weak or scattered."""
        spread = statistics.pstdev(values)
        return clamp(0.5 * overall + 0.5 * (1 - 2 * spread))

    # ── Scores -> SpeakDecision ────────────────────────────────────────

    def decide(self, scores: Scores) -> SpeakDecision:
        cfg = self.config
        threshold = self.threshold(scores.tier)
        should_speak = scores.overall >= threshold
        urgent = scores.named or scores.urgency_score >= cfg.urgent_above

        timing = self._timing(scores, should_speak, urgent)
        priority = self._priority(scores, timing, should_speak, urgent)
        dominant = scores.dominant_factor

        if should_speak:
            reason = (f"{dominant.value} is the strongest signal "
                      f"({scores.factor_value(dominant):.2f})")
        else:
            reason = (f"score {scores.overall:.2f} below the {scores.tier.value} "
                      f"threshold {threshold:.2f}")

        decision = SpeakDecision(
            should_speak=should_speak,
            timing=timing,
            priority=priority,
            confidence=scores.confidence,
            reason=reason,
            dominant_factor=dominant,
            threshold=threshold,
            suggested_wait_ms=self._wait_ms(timing, scores.noise),
            scores=scores,
        )
        logger.debug("decision: speak=%s timing=%s priority=%s overall=%.3f",
                     should_speak, timing.value, priority.value, scores.overall)
        return decision

    def evaluate(self, signals: Signals) -> SpeakDecision:
        return self.decide(self.score(signals))

    def _timing(self, scores: Scores, should_speak: bool, urgent: bool) -> SpeakTiming:
        if not should_speak:
            return SpeakTiming.DONT_SPEAK
        if urgent:
            return SpeakTiming.IMMEDIATE
        if scores.conversation_active:
            return SpeakTiming.WAIT_FOR_GAP
        if scores.urgency_score < self.config.opportunity_below or scores.needs_rest:
            return SpeakTiming.WAIT_FOR_OPPORTUNITY
        return SpeakTiming.IMMEDIATE

    def _priority(self, scores: Scores, timing: SpeakTiming,
                  should_speak: bool, urgent: bool) -> SpeakPriority:
        if not should_speak:
            return SpeakPriority.LOW
        if urgent:
            return SpeakPriority.URGENT
        high = self.config.high_emotion_above
        dominant = scores.dominant_factor
        if dominant in (Factor.URGENCY, Factor.EMOTION) and scores.factor_value(dominant) > high:
            return SpeakPriority.HIGH
        if timing is SpeakTiming.IMMEDIATE and scores.emotion_score > high:
            return SpeakPriority.HIGH
        if timing is SpeakTiming.WAIT_FOR_OPPORTUNITY:
            return SpeakPriority.LOW
        return SpeakPriority.NORMAL

    def _wait_ms(self, timing: SpeakTiming, noise: float) -> int:
        cfg = self.config
        if timing is SpeakTiming.WAIT_FOR_GAP:
            return cfg.noisy_gap_wait_ms if noise > cfg.noisy_above else cfg.gap_wait_ms
        if timing is SpeakTiming.WAIT_FOR_OPPORTUNITY:
            return cfg.opportunity_wait_ms
        return 0


def dominant_factor(values: Mapping[Factor, float]) -> Factor:
    """Largest value wins; ties go to the earlier Factor (urgency first, time last)."""
    best = Factor.URGENCY
    for factor in Factor:
        if values[factor] > values[best]:
            best = factor
    return best


# ── Concurrent signal collection ───────────────────────────────────────


async def gather_signals(providers: Mapping[str, SignalProvider],
                         defaults: Mapping[str, float] | None = None,
                         timeout: float = 1.0) -> dict[str, float]:
    """Run independent signal providers concurrently.

    A provider that raises, times out or returns a non-number degrades to
    its default (0.0 unless given) instead of failing the whole tick.
    """
    defaults = defaults or {}
    names = list(providers)

    async def _one(name: str) -> float:
        value = float(await asyncio.wait_for(providers[name](), timeout))
        if not math.isfinite(value):
            raise ValueError(f"non-finite signal value {value}")
        return value

    results = await asyncio.gather(*(_one(n) for n in names), return_exceptions=True)
    values: dict[str, float] = {}
    for name, result in zip(names, results):
        if isinstance(result, BaseException):
            logger.warning("signal %s unavailable, using default: %r", name, result)
            values[name] = clamp(defaults.get(name, 0.0))
        else:
            values[name] = clamp(result)
    return values


def signals_from(values: Mapping[str, float], **flags) -> Signals:
    """Build Signals from gathered values; unknown names are rejected."""
    unknown = set(values) - set(SIGNAL_NAMES)
    if unknown:
        raise InputInvalid(f"unknown signals: {sorted(unknown)}")
    return Signals(**values, **flags)
