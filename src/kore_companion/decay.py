"""Memory decay. Memories that aren't used fade away, Ebbinghaus style."""

from __future__ import annotations

import math
import time

from kore_companion.config import DAY, StrengthConfig
from kore_companion.models import MemoryRecord, clamp

_LOG_101 = math.log(101)


def effective_strength(mem: MemoryRecord,
                       config: StrengthConfig = StrengthConfig.DEFAULT) -> float:
    """Time constant (in days) of the forgetting curve for this memory.

    base + emotion + importance + context - difficulty, floored so the
    exponent never divides by zero or a negative number.
    """
    base = math.log1p(mem.reinforcement_count) * config.base_multiplier
    emotion = mem.emotion_intensity if mem.emotion_intensity > 0 else abs(mem.emotional_valence)
    total = (
        base
        + emotion * config.emotion_multiplier
        + mem.importance * config.importance_multiplier
        + mem.context_relevance * config.context_multiplier
        - mem.recall_difficulty * config.difficulty_penalty
    )
    return max(total, config.min_effective_strength)


def compute_strength(mem: MemoryRecord, now: float | None = None,
                     config: StrengthConfig = StrengthConfig.DEFAULT) -> float:
    """Probability-like availability of a memory in [0, 1].

    Formula: e^(-days_since_access / effective_strength) * (c0 + c1 * confidence)
    """
    if now is None:
        now = time.time()

    days = max(0.0, (now - mem.last_accessed) / DAY)
    retention = math.exp(-days / effective_strength(mem, config))
    adjusted = retention * (config.confidence_base + config.confidence_weight * mem.confidence)
    return clamp(adjusted)


def half_life_days(mem: MemoryRecord,
                   config: StrengthConfig = StrengthConfig.DEFAULT,
                   max_days: float = 3650.0) -> float:
    """Days after last access until strength drops to half of its fresh value.

    Binary search over the decay curve. Returns ``max_days`` for memories
    that outlive the search horizon.
    """
    fresh = compute_strength(mem, mem.last_accessed, config)
    if fresh <= 0:
        return 0.0
    target = fresh / 2
    if compute_strength(mem, mem.last_accessed + max_days * DAY, config) > target:
        return max_days

    low, high = 0.0, max_days
    for _ in range(60):
        mid = (low + high) / 2
        if compute_strength(mem, mem.last_accessed + mid * DAY, config) > target:
            low = mid
        else:
            high = mid
    return (low + high) / 2


def estimate_recall_difficulty(content: str) -> float:
    """Long content, digits and long words make a memory harder to recall."""
    if not content:
        return 0.0

    length_factor = min(len(content) / 500, 1.0)
    digits = sum(1 for c in content if c.isdigit())
    digit_ratio = digits / len(content)

    tokens = content.split()
    long_ratio = sum(1 for t in tokens if len(t) > 8) / len(tokens) if tokens else 0.0

    return clamp(0.5 * length_factor + 0.3 * digit_ratio + 0.2 * long_ratio)


def recency_score(created_at: float, now: float, decay_days: float = 30.0) -> float:
    """e^(-age_days / decay_days). Future timestamps count as brand new."""
    age_days = max(0.0, (now - created_at) / DAY)
    return math.exp(-age_days / decay_days)


def access_score(count: int) -> float:
    """Log-scaled access frequency, saturating around 100 accesses."""
    if count <= 0:
        return 0.0
    return min(1.0, math.log1p(count) / _LOG_101)


def memory_value(mem: MemoryRecord, now: float | None = None,
                 config: StrengthConfig = StrengthConfig.DEFAULT) -> float:
    """Composite quality used by the low-quality sweep."""
    strength = compute_strength(mem, now, config)
    return 0.4 * strength + 0.4 * mem.importance + 0.2 * mem.confidence


def forgetting_threshold(mem: MemoryRecord, base_threshold: float = 0.15,
                         importance_bonus_factor: float = 0.3) -> float:
    """Important memories get a lower bar and are harder to forget."""
    return base_threshold - mem.importance * importance_bonus_factor
