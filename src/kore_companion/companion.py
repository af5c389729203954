"""Companion: one owned handle over memory, emotion, fatigue and speech decisions."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable

from kore_companion.clock import BiologicalClock, BiologicalState
from kore_companion.config import CompanionConfig
from kore_companion.context import AssembledContext, ContextBuilder, SectionSource
from kore_companion.decision import (
    DecisionScorer,
    RelationTier,
    SIGNAL_NAMES,
    SignalProvider,
    Signals,
    SpeakDecision,
    gather_signals,
    signals_from,
)
from kore_companion.embeddings import EmbedFn
from kore_companion.emotion import EmotionEngine
from kore_companion.evaluator import Evaluator
from kore_companion.interaction import InteractionTracker
from kore_companion.memory import MemoryStore
from kore_companion.models import MaintenanceReport, MemoryCategory, MemoryRecord, RankedMemory
from kore_companion.retrieval import RetrievalRanker, SearchFilters
from kore_companion.storage import MemoryRepository, Storage


class Companion:
    """A persistent companion. One SQLite file = one companion's memory.

    API:
        companion.experience(text)       - something happened, remember it
        companion.recall(query)          - ranked relevant memories
        companion.build_context(query)   - token-budgeted prompt context
        companion.observe(is_primary)    - someone spoke
        companion.tick(...)              - should the companion speak now?
        companion.maintain()             - forgetting cycle + cleanup

    Every subsystem is owned by this instance; nothing is process-global.
    """

    def __init__(self, path: str | Path = "companion.db",
                 config: CompanionConfig | None = None,
                 embed_fn: EmbedFn | None = None,
                 evaluator: Evaluator | None = None,
                 clock: Callable[[], float] = time.time,
                 _repository: MemoryRepository | None = None) -> None:
        self.config = (config or CompanionConfig()).validate()
        self._clock = clock
        self._embed_fn = embed_fn
        self._evaluator = evaluator
        cfg = self.config
        self.memory = MemoryStore(
            _repository or Storage(path),
            strength_config=cfg.strength,
            forgetting_config=cfg.forgetting,
            evaluator=evaluator,
            embed_fn=embed_fn,
            clock=clock,
        )
        self.ranker = RetrievalRanker(cfg.retrieval, cfg.strength)
        self.context_builder = ContextBuilder(cfg.retrieval.max_total_tokens)
        self.emotion = EmotionEngine(cfg.emotion, clock=clock)
        self.body = BiologicalClock(cfg.clock, clock=clock)
        self.interactions = InteractionTracker(cfg.tracker, clock=clock)
        self.scorer = DecisionScorer(cfg.decision)

    # ── memory ─────────────────────────────────────────────────────────

    def experience(self, content: str,
                   category: str | MemoryCategory = MemoryCategory.EPISODIC,
                   **kwargs) -> MemoryRecord:
        """Something happened. Remember it."""
        return self.memory.ingest(content, category, **kwargs)

    def recall(self, query: str = "", top_k: int | None = None,
               filters: SearchFilters | None = None,
               knowledge: bool = False,
               reinforce: bool = True) -> list[RankedMemory]:
        """Ranked memories for ``query``. Returned memories are reinforced."""
        now = self._clock()
        ranked = self.ranker.search_text(
            query, self.memory.active(), self._embed_fn,
            top_k=top_k, filters=filters, now=now, knowledge=knowledge,
        )
        if reinforce:
            for hit in ranked:
                self.memory.reinforce(hit.memory.id, now)
        return ranked

    def build_context(self, query: str = "",
                      world: SectionSource = None,
                      profiles: SectionSource = None,
                      relationships: SectionSource = None,
                      top_k: int | None = None) -> AssembledContext:
        memories = self.recall(query, top_k=top_k)
        return self.context_builder.assemble(
            world=world, profiles=profiles,
            relationships=relationships, memories=memories,
        )

    def maintain(self) -> MaintenanceReport:
        self.emotion.cleanup_expired_accumulations()
        return self.memory.run_maintenance(self._clock())

    # ── perception ─────────────────────────────────────────────────────

    def observe(self, is_primary: bool, intensity: float | None = None) -> None:
        """An utterance was heard. Primary-user turns also tire the companion."""
        self.interactions.record(is_primary)
        if is_primary:
            self.body.record_conversation(intensity)

    def state(self) -> BiologicalState:
        return self.body.current_state()

    def signals(self, time_signal: float = 0.0, relation: float = 0.0,
                context: float = 0.0, curiosity: float = 0.0,
                urgency: float = 0.0,
                tier: RelationTier = RelationTier.STRANGER,
                named: bool = False, conversation_active: bool = False,
                noise: float = 0.0) -> Signals:
        """Combine owned state (emotion, fatigue, interactions) with external signals."""
        body = self.body.current_state()
        return Signals(
            time=time_signal,
            emotion=self.emotion.signal(),
            relation=relation,
            context=context,
            curiosity=curiosity,
            urgency=urgency,
            tier=tier,
            named=named,
            conversation_active=conversation_active,
            noise=noise,
            attention_gap=self.interactions.statistics().attention_gap,
            needs_rest=body.needs_rest,
        )

    def tick(self, **external) -> SpeakDecision:
        """One pass of the decision loop."""
        return self.scorer.evaluate(self.signals(**external))

    async def tick_async(self, providers: dict[str, SignalProvider],
                         defaults: dict[str, float] | None = None,
                         timeout: float = 1.0, **external) -> SpeakDecision:
        """Decision tick with external signals fetched concurrently.

        ``providers`` maps signal names (time, relation, context, curiosity,
        urgency) to coroutine functions. Signals without a provider keep the
        values given in ``external``, exactly as ``tick`` would use them. A
        failed provider uses its entry in ``defaults``, else the ``external``
        value.
        """
        base = self.signals(**external)
        seeded = {name: getattr(base, name) for name in SIGNAL_NAMES}
        values = await gather_signals(providers, {**seeded, **(defaults or {})}, timeout)
        gathered = signals_from(
            {**seeded, **values},
            tier=base.tier,
            named=base.named,
            conversation_active=base.conversation_active,
            noise=base.noise,
            attention_gap=base.attention_gap,
            needs_rest=base.needs_rest,
        )
        return self.scorer.evaluate(gathered)

    # ── utilities ──────────────────────────────────────────────────────

    @property
    def count(self) -> int:
        return self.memory.count

    def close(self) -> None:
        """Close storage, then any evaluator that holds worker threads."""
        self.memory.close()
        close_evaluator = getattr(self._evaluator, "close", None)
        if close_evaluator is not None:
            close_evaluator()

    def __enter__(self) -> Companion:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Companion(memories={self.count}, emotion={self.emotion.current_emotion().value})"
