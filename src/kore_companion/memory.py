"""MemoryStore: owns memory records and their reinforce/forget/restore lifecycle."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from kore_companion.config import DAY, ForgettingConfig, StrengthConfig
from kore_companion.decay import (
    compute_strength,
    estimate_recall_difficulty,
    forgetting_threshold,
    half_life_days,
    memory_value,
)
from kore_companion.embeddings import EmbedFn, embed_text
from kore_companion.errors import EmbeddingUnavailable, InputInvalid
from kore_companion.evaluator import (
    EvaluationContext,
    Evaluator,
    HeuristicEvaluator,
    valence_from_tag,
)
from kore_companion.models import (
    HealthReport,
    MaintenanceReport,
    MemoryCategory,
    MemoryRecord,
    MemoryStatistics,
    validate_id,
)
from kore_companion.storage import MemoryRepository

logger = logging.getLogger(__name__)

_BUCKETS = ("0.0-0.2", "0.2-0.4", "0.4-0.6", "0.6-0.8", "0.8-1.0")


def _bucket(strength: float) -> str:
    return _BUCKETS[min(int(strength * 5), 4)]


class MemoryStore:
    """Long-term memory with Ebbinghaus decay.

    API:
        store.save(record)              - persist a new or replaced record
        store.ingest(content, ...)      - evaluate, embed and save new content
        store.reinforce(id)             - a memory was used
        store.forget(id) / restore(id)  - lifecycle flags, no deletion
        store.strength(record, now)     - recomputed, never stored
        store.perform_forgetting_cycle()
        store.run_maintenance()         - forgetting + low quality + deletion
        store.get_statistics() / health_report()

    Mutations are read-copy-replace under one lock, so a concurrent reader
    sees either the old or the new record, never a half-written one.
    Unknown ids return None; malformed ids raise InputInvalid.
    """

    def __init__(self, repository: MemoryRepository,
                 strength_config: StrengthConfig | None = None,
                 forgetting_config: ForgettingConfig | None = None,
                 evaluator: Evaluator | None = None,
                 embed_fn: EmbedFn | None = None,
                 clock: Callable[[], float] = time.time) -> None:
        self._repo = repository
        self._strength = strength_config or StrengthConfig()
        self._forgetting = forgetting_config or ForgettingConfig()
        self._evaluator = evaluator or HeuristicEvaluator()
        self._embed_fn = embed_fn
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def strength_config(self) -> StrengthConfig:
        return self._strength

    # ── save / ingest ──────────────────────────────────────────────────

    def save(self, record: MemoryRecord) -> MemoryRecord:
        validate_id(record.id)
        if not record.content or not record.content.strip():
            raise InputInvalid("memory content must not be empty")
        with self._lock:
            self._repo.persist(record)
        logger.debug("saved memory %s (%s)", record.id, record.category.value)
        return record

    def ingest(self, content: str,
               category: str | MemoryCategory = MemoryCategory.EPISODIC,
               context: EvaluationContext | None = None,
               emotion_tag: str | None = None,
               emotional_valence: float | None = None,
               emotion_intensity: float = 0.0,
               context_relevance: float = 0.5,
               related_entities: set[str] | None = None,
               related_characters: set[str] | None = None,
               source: str = "") -> MemoryRecord:
        """Something happened: evaluate it, embed it and remember it."""
        if not content or not content.strip():
            raise InputInvalid("memory content must not be empty")
        if isinstance(category, str):
            try:
                category = MemoryCategory(category)
            except ValueError as exc:
                raise InputInvalid(f"unknown memory category: {category!r}") from exc

        context = context or EvaluationContext(emotion_intensity=emotion_intensity)
        evaluation = self._evaluator.evaluate(content, context)

        embedding = None
        if self._embed_fn is not None:
            try:
                embedding = embed_text(self._embed_fn, content)
            except EmbeddingUnavailable:
                logger.warning("storing memory without embedding")

        if emotional_valence is None:
            emotional_valence = valence_from_tag(emotion_tag)

        now = self._clock()
        record = MemoryRecord(
            content=content,
            category=category,
            embedding=embedding,
            importance=evaluation.importance,
            confidence=evaluation.confidence,
            emotional_valence=emotional_valence,
            emotion_tag=emotion_tag,
            emotion_intensity=emotion_intensity,
            created_at=now,
            last_accessed=now,
            recall_difficulty=estimate_recall_difficulty(content),
            context_relevance=context_relevance,
            related_entities=related_entities or set(),
            related_characters=related_characters or set(),
            source=source,
        )
        return self.save(record)

    # ── lookups ────────────────────────────────────────────────────────

    def get(self, memory_id: str) -> MemoryRecord | None:
        return self._repo.load(validate_id(memory_id))

    def active(self) -> list[MemoryRecord]:
        return self._repo.query_active()

    def forgotten(self) -> list[MemoryRecord]:
        return self._repo.query_forgotten()

    # ── lifecycle ──────────────────────────────────────────────────────

    def _update(self, memory_id: str,
                change: Callable[[MemoryRecord], MemoryRecord | None]) -> MemoryRecord | None:
        validate_id(memory_id)
        with self._lock:
            current = self._repo.load(memory_id)
            if current is None:
                return None
            updated = change(current)
            if updated is None:
                return current
            self._repo.persist(updated)
            return updated

    def reinforce(self, memory_id: str, now: float | None = None) -> MemoryRecord | None:
        """Accessing a memory reinforces it. Forgotten memories stay forgotten."""
        when = self._clock() if now is None else now
        return self._update(memory_id, lambda rec: rec.reinforced(when))

    def forget(self, memory_id: str, now: float | None = None) -> MemoryRecord | None:
        when = self._clock() if now is None else now
        return self._update(
            memory_id, lambda rec: None if rec.is_forgotten else rec.forgotten(when),
        )

    def restore(self, memory_id: str, now: float | None = None) -> MemoryRecord | None:
        """Bring a memory back and restart its decay clock."""
        when = self._clock() if now is None else now
        return self._update(memory_id, lambda rec: rec.restored(when))

    def _forget_if(self, memory_id: str, now: float,
                   predicate: Callable[[MemoryRecord], bool]) -> bool:
        """Forget under the lock if still active and ``predicate`` holds on the fresh copy."""
        flagged = []

        def change(rec: MemoryRecord) -> MemoryRecord | None:
            if rec.is_forgotten or not predicate(rec):
                return None
            flagged.append(rec.id)
            return rec.forgotten(now)

        self._update(memory_id, change)
        return bool(flagged)

    def delete(self, memory_id: str) -> bool:
        with self._lock:
            return self._repo.delete(validate_id(memory_id))

    # ── strength ───────────────────────────────────────────────────────

    def strength(self, record: MemoryRecord, now: float | None = None) -> float:
        return compute_strength(record, self._clock() if now is None else now,
                                self._strength)

    def half_life_days(self, record: MemoryRecord) -> float:
        return half_life_days(record, self._strength)

    def should_forget(self, record: MemoryRecord, now: float | None = None) -> bool:
        threshold = forgetting_threshold(
            record,
            self._forgetting.base_threshold,
            self._forgetting.importance_bonus_factor,
        )
        return self.strength(record, now) < threshold

    # ── batch jobs ─────────────────────────────────────────────────────

    def perform_forgetting_cycle(self, now: float | None = None) -> int:
        """Flag every active memory whose strength fell under its threshold."""
        now = self._clock() if now is None else now
        count = 0
        for record in self._repo.query_active():
            if self.should_forget(record, now) and self._forget_if(
                    record.id, now, lambda rec: self.should_forget(rec, now)):
                count += 1
        logger.info("forgetting cycle flagged %d memories", count)
        return count

    def cleanup_forgotten(self, now: float | None = None,
                          retention_days: float | None = None) -> int:
        """Physically delete memories forgotten longer than the grace period."""
        now = self._clock() if now is None else now
        if retention_days is None:
            retention_days = self._forgetting.forgotten_retention_days
        if retention_days < 0:
            raise InputInvalid("retention_days must not be negative")
        cutoff = now - retention_days * DAY
        deleted = 0
        with self._lock:
            for record in self._repo.query_forgotten():
                forgotten_at = record.forgotten_at if record.forgotten_at is not None else record.last_accessed
                if forgotten_at < cutoff and self._repo.delete(record.id):
                    deleted += 1
        logger.info("deleted %d forgotten memories", deleted)
        return deleted

    def cleanup_low_quality(self, now: float | None = None) -> int:
        """Forget low-importance, long-unreinforced memories with poor overall value."""
        now = self._clock() if now is None else now
        cfg = self._forgetting
        cutoff = now - cfg.low_quality_unreinforced_days * DAY
        count = 0
        for record in self._repo.query_active():
            if record.category in cfg.protected_categories:
                continue
            if record.importance >= cfg.low_quality_importance or record.last_accessed > cutoff:
                continue
            if memory_value(record, now, self._strength) >= cfg.low_quality_floor:
                continue
            if self._forget_if(record.id, now, lambda rec: True):
                count += 1
        logger.info("low-quality sweep forgot %d memories", count)
        return count

    def run_maintenance(self, now: float | None = None) -> MaintenanceReport:
        now = self._clock() if now is None else now
        t0 = time.time()
        report = MaintenanceReport(started_at=now)
        report.forgotten = self.perform_forgetting_cycle(now)
        report.low_quality = self.cleanup_low_quality(now)
        report.deleted = self.cleanup_forgotten(now)
        report.duration_ms = (time.time() - t0) * 1000
        return report

    def predict_forgetting(self, days_ahead: float, now: float | None = None) -> int:
        """How many active memories would the cycle flag ``days_ahead`` from now."""
        if days_ahead < 0:
            raise InputInvalid("days_ahead must not be negative")
        future = (self._clock() if now is None else now) + days_ahead * DAY
        return sum(1 for rec in self._repo.query_active() if self.should_forget(rec, future))

    # ── statistics ─────────────────────────────────────────────────────

    def get_statistics(self, now: float | None = None) -> MemoryStatistics:
        now = self._clock() if now is None else now
        active = self._repo.query_active()
        forgotten = self._repo.query_forgotten()

        stats = MemoryStatistics(
            total=len(active) + len(forgotten),
            active=len(active),
            forgotten=len(forgotten),
            strength_distribution={b: 0 for b in _BUCKETS},
        )
        if not active:
            return stats

        strengths = []
        for record in active:
            s = self.strength(record, now)
            strengths.append(s)
            key = record.category.value
            stats.by_category[key] = stats.by_category.get(key, 0) + 1
            stats.strength_distribution[_bucket(s)] += 1
            if s > self._strength.strong_threshold:
                stats.strong += 1
            elif s < self._strength.weak_threshold:
                stats.weak += 1
            idle_days = (now - record.last_accessed) / DAY
            if idle_days < self._forgetting.recent_days:
                stats.recently_accessed += 1
            if idle_days > self._forgetting.stale_days:
                stats.stale += 1

        n = len(active)
        stats.average_importance = sum(r.importance for r in active) / n
        stats.average_reinforcement = sum(r.reinforcement_count for r in active) / n
        stats.average_strength = sum(strengths) / n
        return stats

    def health_report(self, now: float | None = None) -> HealthReport:
        stats = self.get_statistics(now)
        if stats.active == 0:
            return HealthReport(score=0.0, status="empty", statistics=stats)

        strong_ratio = stats.strong / stats.active
        recent_ratio = stats.recently_accessed / stats.active
        stale_ratio = stats.stale / stats.active
        score = (strong_ratio * 40 + recent_ratio * 30
                 + (1 - stale_ratio) * 20 + stats.average_importance * 10)
        score = max(0.0, min(100.0, score))

        if score >= 80:
            status = "excellent"
        elif score >= 60:
            status = "good"
        elif score >= 40:
            status = "fair"
        elif score >= 20:
            status = "poor"
        else:
            status = "needs optimization"

        recommendations = []
        if stats.weak > stats.strong:
            recommendations.append("many weak memories: run the forgetting cycle")
        if stale_ratio > 0.3:
            recommendations.append("over 30% of memories are stale: run the low-quality sweep")
        if stats.forgotten > stats.active:
            recommendations.append("forgotten records outnumber active ones: clean them up")
        return HealthReport(score=score, status=status, statistics=stats,
                            recommendations=recommendations)

    # ── utilities ──────────────────────────────────────────────────────

    @property
    def count(self) -> int:
        return self._repo.count()

    def close(self) -> None:
        self._repo.close()

    def __enter__(self) -> MemoryStore:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"MemoryStore(memories={self.count})"
