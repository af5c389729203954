"""kore-companion: decaying memory, emotions, fatigue and speech decisions for a persistent companion."""

from kore_companion.models import MemoryRecord, MemoryCategory, RankedMemory
from kore_companion.errors import (
    CompanionError, InputInvalid, EvaluatorUnavailable, EmbeddingUnavailable, StorageError,
)
from kore_companion.config import CompanionConfig, load_config
from kore_companion.emotion import EmotionalState, EmotionEngine, transition_cost
from kore_companion.clock import BiologicalClock, BiologicalState, TimeOfDay
from kore_companion.memory import MemoryStore
from kore_companion.retrieval import RetrievalRanker, SearchFilters
from kore_companion.context import ContextBuilder, estimate_tokens
from kore_companion.interaction import InteractionTracker
from kore_companion.decision import (
    DecisionScorer, Signals, SpeakDecision, SpeakPriority, SpeakTiming, RelationTier,
)
from kore_companion.evaluator import FallbackEvaluator, HeuristicEvaluator, LLMEvaluator
from kore_companion.embeddings import numpy_embed
from kore_companion.storage import Storage
from kore_companion.companion import Companion

__version__ = "0.1.0"
__all__ = [
    "Companion", "MemoryRecord", "MemoryCategory", "RankedMemory",
    "CompanionError", "InputInvalid", "EvaluatorUnavailable",
    "EmbeddingUnavailable", "StorageError",
    "CompanionConfig", "load_config",
    "EmotionalState", "EmotionEngine", "transition_cost",
    "BiologicalClock", "BiologicalState", "TimeOfDay",
    "MemoryStore", "RetrievalRanker", "SearchFilters",
    "ContextBuilder", "estimate_tokens", "InteractionTracker",
    "DecisionScorer", "Signals", "SpeakDecision", "SpeakPriority",
    "SpeakTiming", "RelationTier",
    "FallbackEvaluator", "HeuristicEvaluator", "LLMEvaluator",
    "numpy_embed", "Storage",
]
