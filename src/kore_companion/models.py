"""Core data models. A memory has a lifecycle: it is reinforced, fades and is forgotten."""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum

from kore_companion.errors import InputInvalid

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def validate_id(memory_id: str) -> str:
    """Reject ids that could never have been issued by this library."""
    if not isinstance(memory_id, str) or not _ID_PATTERN.match(memory_id):
        raise InputInvalid(f"malformed memory id: {memory_id!r}")
    return memory_id


class MemoryCategory(str, Enum):
    EPISODIC = "episodic"        # things that happened, conversations
    SEMANTIC = "semantic"        # general knowledge
    PROCEDURAL = "procedural"    # how to do things
    CONTEXTUAL = "contextual"    # situation-bound details
    PERSON = "person"            # who someone is
    PREFERENCE = "preference"    # likes and dislikes
    FACT = "fact"                # stable facts about the world or the user
    ANNIVERSARY = "anniversary"  # dates worth remembering


@dataclass
class MemoryRecord:
    """A unit of long-term knowledge.

    Strength is never stored: it is recomputed from the decay formula
    (see ``kore_companion.decay``) every time it is needed. Bounded scalars
    are clamped on construction, so ``dataclasses.replace`` keeps them in range.
    """

    content: str
    category: MemoryCategory = MemoryCategory.EPISODIC
    embedding: bytes | None = None  # float32 vector (numpy .tobytes())
    importance: float = 0.5
    confidence: float = 1.0
    emotional_valence: float = 0.0
    emotion_tag: str | None = None
    emotion_intensity: float = 0.0
    created_at: float = field(default_factory=time.time)
    last_accessed: float = field(default_factory=time.time)
    reinforcement_count: int = 0
    access_count: int = 0
    recall_difficulty: float = 0.5
    context_relevance: float = 0.5
    related_entities: set[str] = field(default_factory=set)
    related_characters: set[str] = field(default_factory=set)
    source: str = ""
    is_forgotten: bool = False
    forgotten_at: float | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def __post_init__(self) -> None:
        if isinstance(self.category, str):
            self.category = MemoryCategory(self.category)
        self.importance = clamp(self.importance)
        self.confidence = clamp(self.confidence)
        self.emotional_valence = clamp(self.emotional_valence, -1.0, 1.0)
        self.emotion_intensity = clamp(self.emotion_intensity)
        self.recall_difficulty = clamp(self.recall_difficulty)
        self.context_relevance = clamp(self.context_relevance)
        self.reinforcement_count = max(0, int(self.reinforcement_count))
        self.access_count = max(0, int(self.access_count))
        self.last_accessed = max(self.last_accessed, self.created_at)
        self.related_entities = set(self.related_entities)
        self.related_characters = set(self.related_characters)
        if not self.is_forgotten:
            self.forgotten_at = None

    # ── lifecycle transitions (return a new record) ─────────────────────

    def reinforced(self, now: float | None = None) -> MemoryRecord:
        """Using a memory resets its decay clock and bumps its counters."""
        if now is None:
            now = time.time()
        return replace(
            self,
            reinforcement_count=self.reinforcement_count + 1,
            access_count=self.access_count + 1,
            last_accessed=now,
        )

    def forgotten(self, now: float | None = None) -> MemoryRecord:
        if now is None:
            now = time.time()
        return replace(self, is_forgotten=True, forgotten_at=now)

    def restored(self, now: float | None = None) -> MemoryRecord:
        if now is None:
            now = time.time()
        return replace(
            self,
            is_forgotten=False,
            forgotten_at=None,
            last_accessed=now,
        )


@dataclass
class RankedMemory:
    """One retrieval hit with the sub-scores that produced it."""

    memory: MemoryRecord
    score: float
    similarity: float = 0.0
    recency: float = 0.0
    access: float = 0.0
    strength: float = 0.0


@dataclass
class MemoryStatistics:
    total: int = 0
    active: int = 0
    forgotten: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    average_importance: float = 0.0
    average_reinforcement: float = 0.0
    average_strength: float = 0.0
    strong: int = 0
    weak: int = 0
    recently_accessed: int = 0
    stale: int = 0
    strength_distribution: dict[str, int] = field(default_factory=dict)


@dataclass
class HealthReport:
    score: float
    status: str
    statistics: MemoryStatistics
    recommendations: list[str] = field(default_factory=list)


@dataclass
class MaintenanceReport:
    forgotten: int = 0
    low_quality: int = 0
    deleted: int = 0
    started_at: float = field(default_factory=time.time)
    duration_ms: float = 0.0

    @property
    def total(self) -> int:
        return self.forgotten + self.low_quality + self.deleted
