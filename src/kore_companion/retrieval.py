"""Relevance ranking: semantic similarity blended with decay, importance and usage."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from kore_companion.config import RankingWeights, RetrievalConfig, StrengthConfig
from kore_companion.decay import access_score, compute_strength, recency_score
from kore_companion.embeddings import EmbedFn, cosine_similarity, embed_text
from kore_companion.errors import EmbeddingUnavailable, InputInvalid
from kore_companion.models import MemoryCategory, MemoryRecord, RankedMemory

logger = logging.getLogger(__name__)


@dataclass
class SearchFilters:
    """Optional narrowing applied before scoring. Forgotten memories are always excluded."""

    categories: set[MemoryCategory] = field(default_factory=set)
    min_importance: float = 0.0
    entity: str | None = None
    source: str | None = None

    def accepts(self, mem: MemoryRecord) -> bool:
        if self.categories and mem.category not in self.categories:
            return False
        if mem.importance < self.min_importance:
            return False
        if self.entity is not None and (
                self.entity not in mem.related_entities
                and self.entity not in mem.related_characters):
            return False
        if self.source is not None and mem.source != self.source:
            return False
        return True


class RetrievalRanker:
    """Pure ranking over a snapshot of candidates. Never mutates the memories."""

    def __init__(self, config: RetrievalConfig | None = None,
                 strength_config: StrengthConfig | None = None) -> None:
        self.config = config or RetrievalConfig()
        self.strength_config = strength_config or StrengthConfig()

    def search(self, query_embedding: bytes,
               candidates: Iterable[MemoryRecord],
               top_k: int | None = None,
               min_similarity: float | None = None,
               filters: SearchFilters | None = None,
               now: float | None = None) -> list[RankedMemory]:
        """Conversation-memory ranking. Every hit has similarity >= ``min_similarity``.

        final = w_sim*similarity + w_rec*recency + w_imp*importance
                + w_acc*access + w_str*strength
        """
        _require_embedding(query_embedding)
        return self._search(query_embedding, candidates, False,
                            top_k, min_similarity, filters, now)

    def search_knowledge(self, query_embedding: bytes,
                         candidates: Iterable[MemoryRecord],
                         top_k: int | None = None,
                         min_similarity: float | None = None,
                         filters: SearchFilters | None = None,
                         now: float | None = None) -> list[RankedMemory]:
        """General-knowledge ranking: static importance/confidence instead of access frequency."""
        _require_embedding(query_embedding)
        return self._search(query_embedding, candidates, True,
                            top_k, min_similarity, filters, now)

    def search_text(self, query: str, candidates: Iterable[MemoryRecord],
                    embed_fn: EmbedFn | None,
                    top_k: int | None = None,
                    min_similarity: float | None = None,
                    filters: SearchFilters | None = None,
                    now: float | None = None,
                    knowledge: bool = False) -> list[RankedMemory]:
        """Embed ``query`` then rank. An unavailable embedder degrades, it never fails.

        Without a query embedding the semantic term is skipped: there is no
        similarity filter and similarity contributes 0.
        """
        query_embedding = None
        if embed_fn is not None and query:
            try:
                query_embedding = embed_text(embed_fn, query)
            except EmbeddingUnavailable:
                logger.warning("ranking without semantic similarity")
        return self._search(query_embedding, candidates, knowledge,
                            top_k, min_similarity, filters, now)

    # ── internals ──────────────────────────────────────────────────────

    def _search(self, query_embedding: bytes | None,
                candidates: Iterable[MemoryRecord],
                knowledge: bool,
                top_k: int | None,
                min_similarity: float | None,
                filters: SearchFilters | None,
                now: float | None) -> list[RankedMemory]:
        cfg = self.config
        if min_similarity is None:
            min_similarity = cfg.knowledge_min_similarity if knowledge else cfg.min_similarity
        return self._rank(
            query_embedding, candidates,
            weights=cfg.knowledge_weights if knowledge else cfg.weights,
            top_k=cfg.top_k if top_k is None else top_k,
            min_similarity=min_similarity,
            filters=filters,
            now=now,
        )

    def _rank(self, query_embedding: bytes | None,
              candidates: Iterable[MemoryRecord],
              weights: RankingWeights,
              top_k: int,
              min_similarity: float,
              filters: SearchFilters | None,
              now: float | None) -> list[RankedMemory]:
        if top_k <= 0:
            raise InputInvalid(f"top_k must be positive, got {top_k}")
        if not 0.0 <= min_similarity <= 1.0:
            raise InputInvalid(f"min_similarity must be within [0, 1], got {min_similarity}")
        if now is None:
            now = time.time()

        semantic = query_embedding is not None
        scored = []
        for mem in candidates:
            if mem.is_forgotten:
                continue
            if filters is not None and not filters.accepts(mem):
                continue

            similarity = 0.0
            if semantic:
                if mem.embedding is None:
                    continue
                try:
                    similarity = cosine_similarity(query_embedding, mem.embedding)
                except ValueError as exc:
                    logger.debug("skipping memory %s: %s", mem.id, exc)
                    continue
                if similarity < min_similarity:
                    continue

            recency = recency_score(mem.created_at, now, self.config.recency_half_life_days)
            access = access_score(mem.access_count)
            strength = compute_strength(mem, now, self.strength_config)
            score = (
                weights.similarity * similarity
                + weights.recency * recency
                + weights.importance * mem.importance
                + weights.access * access
                + weights.strength * strength
                + weights.confidence * mem.confidence
            )
            scored.append(RankedMemory(
                memory=mem, score=score, similarity=similarity,
                recency=recency, access=access, strength=strength,
            ))

        # sort() is stable: equal scores keep input order
        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:top_k]


def _require_embedding(query_embedding: bytes | None) -> None:
    if not query_embedding:
        raise InputInvalid("query embedding is required; use search_text to rank "
                           "without one")
