"""Importance/confidence evaluation: language model first, keyword heuristics as fallback."""

from __future__ import annotations

import json
import logging
import math
import re
import warnings
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from kore_companion.errors import EvaluatorUnavailable
from kore_companion.models import clamp

logger = logging.getLogger(__name__)

# Type alias: takes a prompt, returns the model's text completion
ChatFn = Callable[[str], str]


class EventType(str, Enum):
    DAILY_CHAT = "daily_chat"
    FIRST_MEET = "first_meet"
    IMPORTANT_EVENT = "important_event"
    PROMISE = "promise"
    CONFLICT = "conflict"
    CELEBRATION = "celebration"


_EVENT_BONUS = {
    EventType.DAILY_CHAT: 0.0,
    EventType.FIRST_MEET: 3.0,
    EventType.IMPORTANT_EVENT: 3.0,
    EventType.PROMISE: 2.0,
    EventType.CONFLICT: 2.0,
    EventType.CELEBRATION: 1.0,
}

_VERY_IMPORTANT = (
    "birthday", "anniversary", "promise", "never forget", "always remember",
    "important", "wedding", "funeral", "graduation", "hospital", "secret",
)
_EMOTIONAL = (
    "love", "hate", "miss", "sorry", "thank", "afraid", "happy", "sad",
    "angry", "worried", "proud", "lonely",
)
_HYPOTHETICAL = (
    "just kidding", "joking", "lol", "haha", "what if", "imagine", "pretend",
    "hypothetically", "suppose",
)
_UNCERTAIN = ("maybe", "probably", "i think", "not sure", "might")

_TAG_VALENCE = {
    "happy": 0.8, "joy": 0.8, "excited": 0.8, "proud": 0.8, "love": 0.8,
    "calm": 0.5, "peaceful": 0.5, "content": 0.5,
    "neutral": 0.0,
    "sad": -0.5, "disappointed": -0.5, "worried": -0.5,
    "angry": -0.8, "frustrated": -0.8, "fearful": -0.8, "disgusted": -0.8,
}


def valence_from_tag(tag: str | None) -> float:
    """Fallback emotional valence when the evaluator gives none. Unknown tags are neutral."""
    if not tag:
        return 0.0
    return _TAG_VALENCE.get(tag.strip().lower(), 0.0)


@dataclass
class EvaluationContext:
    event_type: EventType = EventType.DAILY_CHAT
    involves_primary: bool = False
    emotion_intensity: float = 0.0


@dataclass
class Evaluation:
    importance: float
    confidence: float
    method: str = "heuristic"

    def __post_init__(self) -> None:
        self.importance = clamp(self.importance)
        self.confidence = clamp(self.confidence)


class Evaluator(Protocol):
    def evaluate(self, content: str,
                 context: EvaluationContext | None = None) -> Evaluation: ...


# ── Deterministic fallback ─────────────────────────────────────────────


class HeuristicEvaluator:
    """Keyword/length rules on a 0-10 scale, normalized to [0, 1].

    Base 5, plus event bonus, +2 when the primary user is involved,
    +2/+1 for strong/moderate emotion and up to +3 from keywords.
    """

    def __init__(self, default_confidence: float = 0.7) -> None:
        self.default_confidence = default_confidence

    def evaluate(self, content: str,
                 context: EvaluationContext | None = None) -> Evaluation:
        context = context or EvaluationContext()
        text = content.lower()

        score = 5.0 + _EVENT_BONUS[context.event_type]
        if context.involves_primary:
            score += 2.0
        if context.emotion_intensity > 0.7:
            score += 2.0
        elif context.emotion_intensity > 0.5:
            score += 1.0

        keywords = sum(2.0 for k in _VERY_IMPORTANT if k in text)
        keywords += sum(1.0 for k in _EMOTIONAL if k in text)
        score += min(keywords, 3.0)

        # Very short chatter rarely matters
        if len(text.split()) < 3:
            score -= 1.0

        confidence = self.default_confidence
        if any(k in text for k in _HYPOTHETICAL):
            confidence = min(confidence, 0.3)
        elif any(k in text for k in _UNCERTAIN):
            confidence = min(confidence, 0.5)

        return Evaluation(
            importance=max(0.0, min(10.0, score)) / 10.0,
            confidence=confidence,
            method="heuristic",
        )


# ── Language-model evaluator ───────────────────────────────────────────

_PROMPT = """Rate how important the following memory is for a companion to keep,
and how confident you are that it is a sincere, factual statement.
Event type: {event}. Involves the primary user: {primary}.
Reply with JSON only: {{"importance": <0..1>, "confidence": <0..1>}}

Memory: {content}"""

_JSON_OBJECT = re.compile(r"\{.*?\}", re.DOTALL)


class LLMEvaluator:
    """Asks an external chat model. Any failure or timeout raises EvaluatorUnavailable."""

    def __init__(self, chat_fn: ChatFn, timeout: float = 10.0) -> None:
        self._chat_fn = chat_fn
        self._timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=2,
                                            thread_name_prefix="kore-evaluator")

    def evaluate(self, content: str,
                 context: EvaluationContext | None = None) -> Evaluation:
        context = context or EvaluationContext()
        prompt = _PROMPT.format(
            event=context.event_type.value,
            primary="yes" if context.involves_primary else "no",
            content=content,
        )
        try:
            future = self._executor.submit(self._chat_fn, prompt)
        except RuntimeError as exc:
            raise EvaluatorUnavailable("evaluator is closed") from exc
        try:
            reply = future.result(timeout=self._timeout)
        except FutureTimeout as exc:
            future.cancel()
            raise EvaluatorUnavailable(f"evaluator timed out after {self._timeout}s") from exc
        except Exception as exc:
            raise EvaluatorUnavailable(f"evaluator failed: {exc}") from exc
        return self.parse(reply)

    @staticmethod
    def parse(reply: str) -> Evaluation:
        match = _JSON_OBJECT.search(reply or "")
        if match is None:
            raise EvaluatorUnavailable("evaluator reply has no JSON object")
        try:
            data = json.loads(match.group(0))
            importance = float(data["importance"])
            confidence = float(data.get("confidence", 0.7))
        except (ValueError, KeyError, TypeError) as exc:
            raise EvaluatorUnavailable(f"unparseable evaluator reply: {exc}") from exc
        if not (math.isfinite(importance) and math.isfinite(confidence)):
            raise EvaluatorUnavailable("evaluator reply has non-finite scores")
        # Some models answer on a 0-10 scale
        if importance > 1.0:
            importance /= 10.0
        return Evaluation(importance=importance, confidence=confidence, method="llm")

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def __enter__(self) -> LLMEvaluator:
        return self

    def __exit__(self, *args) -> None:
        self.close()


class FallbackEvaluator:
    """Tries ``primary`` and falls through to ``fallback`` on any EvaluatorUnavailable."""

    def __init__(self, primary: Evaluator,
                 fallback: Evaluator | None = None) -> None:
        self.primary = primary
        self.fallback = fallback or HeuristicEvaluator()
        self._warned = False

    def evaluate(self, content: str,
                 context: EvaluationContext | None = None) -> Evaluation:
        try:
            return self.primary.evaluate(content, context)
        except EvaluatorUnavailable as exc:
            logger.warning("evaluator unavailable, using heuristics: %s", exc)
            if not self._warned:
                warnings.warn(
                    "Language-model evaluator unavailable, falling back to "
                    "keyword heuristics.",
                    RuntimeWarning,
                    stacklevel=2,
                )
                self._warned = True
            return self.fallback.evaluate(content, context)

    def close(self) -> None:
        for evaluator in (self.primary, self.fallback):
            close = getattr(evaluator, "close", None)
            if close is not None:
                close()
