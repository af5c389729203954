"""Tunable constants, grouped per subsystem. Loadable from YAML."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import Any, ClassVar

import yaml

from kore_companion.errors import InputInvalid
from kore_companion.models import MemoryCategory

logger = logging.getLogger(__name__)

DAY = 86400.0


def _check_unit(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise InputInvalid(f"{name} must be within [0, 1], got {value}")


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        raise InputInvalid(f"{name} must be positive, got {value}")


# ── Memory strength ────────────────────────────────────────────────────


@dataclass
class StrengthConfig:
    """Multipliers of the Ebbinghaus strength formula."""

    base_multiplier: float = 10.0        # k1, applied to ln(1 + reinforcements)
    emotion_multiplier: float = 5.0      # k2
    importance_multiplier: float = 3.0   # k3
    context_multiplier: float = 2.0      # k4
    difficulty_penalty: float = 2.0      # k5
    confidence_base: float = 0.5         # c0
    confidence_weight: float = 0.5       # c1
    min_effective_strength: float = 1.0
    strong_threshold: float = 0.7
    weak_threshold: float = 0.3

    DEFAULT: ClassVar[StrengthConfig]
    CONSERVATIVE: ClassVar[StrengthConfig]
    AGGRESSIVE: ClassVar[StrengthConfig]

    def validate(self) -> None:
        _check_positive("min_effective_strength", self.min_effective_strength)
        for name in ("base_multiplier", "emotion_multiplier", "importance_multiplier",
                     "context_multiplier", "difficulty_penalty"):
            if getattr(self, name) < 0:
                raise InputInvalid(f"{name} must not be negative")
        _check_unit("confidence_base", self.confidence_base)
        _check_unit("confidence_weight", self.confidence_weight)
        if self.confidence_base + self.confidence_weight > 1.0 + 1e-9:
            raise InputInvalid("confidence_base + confidence_weight must not exceed 1")
        _check_unit("strong_threshold", self.strong_threshold)
        _check_unit("weak_threshold", self.weak_threshold)


StrengthConfig.DEFAULT = StrengthConfig()
# Memories last longer
StrengthConfig.CONSERVATIVE = StrengthConfig(
    base_multiplier=15.0, emotion_multiplier=7.0, importance_multiplier=5.0,
    context_multiplier=3.0, difficulty_penalty=1.0,
)
# Memories fade faster
StrengthConfig.AGGRESSIVE = StrengthConfig(
    base_multiplier=7.0, emotion_multiplier=3.0, importance_multiplier=2.0,
    context_multiplier=1.0, difficulty_penalty=3.0,
)


@dataclass
class ForgettingConfig:
    """Forgetting cycle and cleanup sweeps."""

    base_threshold: float = 0.15
    importance_bonus_factor: float = 0.3
    forgotten_retention_days: float = 30.0
    low_quality_importance: float = 0.3
    low_quality_unreinforced_days: float = 7.0
    low_quality_floor: float = 0.1
    recent_days: float = 7.0
    stale_days: float = 90.0
    protected_categories: list[MemoryCategory] = field(
        default_factory=lambda: [MemoryCategory.ANNIVERSARY, MemoryCategory.PERSON],
    )

    def validate(self) -> None:
        _check_unit("base_threshold", self.base_threshold)
        _check_unit("importance_bonus_factor", self.importance_bonus_factor)
        _check_unit("low_quality_importance", self.low_quality_importance)
        _check_unit("low_quality_floor", self.low_quality_floor)
        for name in ("forgotten_retention_days", "low_quality_unreinforced_days",
                     "recent_days", "stale_days"):
            if getattr(self, name) < 0:
                raise InputInvalid(f"{name} must not be negative")
        self.protected_categories = [MemoryCategory(c) for c in self.protected_categories]


# ── Retrieval ──────────────────────────────────────────────────────────


@dataclass
class RankingWeights:
    similarity: float = 0.5
    recency: float = 0.2
    importance: float = 0.15
    access: float = 0.1
    strength: float = 0.05
    confidence: float = 0.0

    def validate(self) -> None:
        total = 0.0
        for f in fields(self):
            value = getattr(self, f.name)
            _check_unit(f"weight {f.name}", value)
            total += value
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise InputInvalid(f"ranking weights must sum to 1, got {total:.4f}")


def _knowledge_weights() -> RankingWeights:
    return RankingWeights(similarity=0.6, recency=0.0, importance=0.2,
                          access=0.0, strength=0.15, confidence=0.05)


@dataclass
class RetrievalConfig:
    weights: RankingWeights = field(default_factory=RankingWeights)
    knowledge_weights: RankingWeights = field(default_factory=_knowledge_weights)
    recency_half_life_days: float = 30.0
    min_similarity: float = 0.3
    knowledge_min_similarity: float = 0.4
    top_k: int = 10
    max_total_tokens: int = 3000

    def validate(self) -> None:
        self.weights.validate()
        self.knowledge_weights.validate()
        _check_positive("recency_half_life_days", self.recency_half_life_days)
        _check_unit("min_similarity", self.min_similarity)
        _check_unit("knowledge_min_similarity", self.knowledge_min_similarity)
        _check_positive("top_k", self.top_k)
        _check_positive("max_total_tokens", self.max_total_tokens)


# ── Emotion, clock, interactions ───────────────────────────────────────


@dataclass
class EmotionConfig:
    """Transition durations in seconds, plus accumulation rules."""

    fast_seconds: int = 30
    default_seconds: int = 120
    slow_seconds: int = 300
    very_slow_seconds: int = 600
    min_seconds: int = 10
    accumulate_below: float = 0.7
    stubborn_above: float = 0.7
    burst_count: int = 3
    burst_window_seconds: float = 30 * 60
    burst_intensity: float = 1.5
    burst_amplification: float = 1.5
    accumulation_ttl_seconds: float = 60 * 60

    def validate(self) -> None:
        if not (0 < self.fast_seconds <= self.default_seconds
                <= self.slow_seconds <= self.very_slow_seconds):
            raise InputInvalid("emotion durations must be positive and ordered "
                               "fast <= default <= slow <= very_slow")
        _check_positive("min_seconds", self.min_seconds)
        _check_unit("accumulate_below", self.accumulate_below)
        _check_unit("stubborn_above", self.stubborn_above)
        _check_positive("burst_count", self.burst_count)


@dataclass
class ClockConfig:
    """Fatigue accumulation and recovery."""

    expiry_seconds: float = 3600.0
    recovery_per_minute: float = 0.05
    discard_below: float = 0.05
    default_intensity: float = 0.1
    fatigue_warning: float = 0.7
    fatigue_impact: float = 0.5
    rest_below: float = 0.3
    energetic_above: float = 0.7
    sleepy_below: float = 0.4

    def validate(self) -> None:
        _check_positive("expiry_seconds", self.expiry_seconds)
        _check_positive("recovery_per_minute", self.recovery_per_minute)
        for name in ("discard_below", "default_intensity", "fatigue_warning",
                     "fatigue_impact", "rest_below", "energetic_above", "sleepy_below"):
            _check_unit(name, getattr(self, name))


@dataclass
class TrackerConfig:
    capacity: int = 100
    retention_minutes: float = 120.0
    window_minutes: float = 30.0

    def validate(self) -> None:
        _check_positive("capacity", self.capacity)
        _check_positive("retention_minutes", self.retention_minutes)
        _check_positive("window_minutes", self.window_minutes)


# ── Decision ───────────────────────────────────────────────────────────


@dataclass
class DecisionWeights:
    time: float = 0.2
    emotion: float = 0.25
    relation: float = 0.25
    context: float = 0.15
    curiosity: float = 0.1
    urgency: float = 0.05

    def validate(self) -> None:
        total = 0.0
        for f in fields(self):
            value = getattr(self, f.name)
            _check_unit(f"weight {f.name}", value)
            total += value
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise InputInvalid(f"decision weights must sum to 1, got {total:.4f}")


@dataclass
class DecisionConfig:
    weights: DecisionWeights = field(default_factory=DecisionWeights)
    primary_threshold: float = 0.65
    friend_threshold: float = 0.75
    stranger_threshold: float = 0.85
    urgent_above: float = 0.9
    opportunity_below: float = 0.5
    high_emotion_above: float = 0.7
    interaction_gap_weight: float = 0.2
    noisy_above: float = 0.5
    gap_wait_ms: int = 500
    noisy_gap_wait_ms: int = 2000
    opportunity_wait_ms: int = 5000

    def validate(self) -> None:
        self.weights.validate()
        for name in ("primary_threshold", "friend_threshold", "stranger_threshold",
                     "urgent_above", "opportunity_below", "high_emotion_above",
                     "interaction_gap_weight", "noisy_above"):
            _check_unit(name, getattr(self, name))
        if not self.primary_threshold <= self.friend_threshold <= self.stranger_threshold:
            raise InputInvalid("thresholds must rise from primary to stranger")


@dataclass
class CompanionConfig:
    strength: StrengthConfig = field(default_factory=StrengthConfig)
    forgetting: ForgettingConfig = field(default_factory=ForgettingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    emotion: EmotionConfig = field(default_factory=EmotionConfig)
    clock: ClockConfig = field(default_factory=ClockConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    decision: DecisionConfig = field(default_factory=DecisionConfig)

    def validate(self) -> CompanionConfig:
        for f in fields(self):
            getattr(self, f.name).validate()
        return self


# ── YAML loading ───────────────────────────────────────────────────────


def _build(defaults: Any, data: dict[str, Any], path: str) -> Any:
    """Overlay ``data`` on a default instance, recursing into nested configs."""
    if not isinstance(data, dict):
        raise InputInvalid(f"{path or 'config'} must be a mapping")
    known = {f.name for f in fields(defaults)}
    unknown = set(data) - known
    if unknown:
        raise InputInvalid(f"unknown config keys under {path or 'root'}: {sorted(unknown)}")
    kwargs: dict[str, Any] = {}
    for name, value in data.items():
        current = getattr(defaults, name)
        if is_dataclass(current):
            kwargs[name] = _build(current, value or {}, f"{path}.{name}".strip("."))
        else:
            kwargs[name] = value
    return replace(defaults, **kwargs)


def config_from_dict(data: dict[str, Any]) -> CompanionConfig:
    return _build(CompanionConfig(), data, "").validate()


def load_config(path: str | Path) -> CompanionConfig:
    """Read a YAML file. Missing keys keep their defaults."""
    path = Path(path)
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    config = config_from_dict(data)
    logger.debug("loaded config from %s", path)
    return config
