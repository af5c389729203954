"""Rolling history of who the companion's people talk to, in aggregate only."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

from kore_companion.config import TrackerConfig
from kore_companion.errors import InputInvalid


@dataclass(frozen=True)
class InteractionRecord:
    timestamp: float
    is_primary: bool


@dataclass(frozen=True)
class InteractionStatistics:
    total: int
    primary_recent: int
    others_recent: int
    window_minutes: float

    @property
    def attention_gap(self) -> float:
        """Share of recent utterances that went to others, in [0, 1]."""
        recent = self.primary_recent + self.others_recent
        if recent == 0:
            return 0.0
        return self.others_recent / recent

    def describe(self) -> str:
        primary, others = self.primary_recent, self.others_recent
        if others == 0:
            return "no interactions with others"
        if primary == 0:
            return f"{others} interactions with others, none with me"
        if others > primary * 3:
            return f"talking to others far more ({others} vs {primary})"
        if others > primary * 2:
            return f"talking to others twice as much ({others} vs {primary})"
        if others > primary:
            return f"talking to others a bit more ({others} vs {primary})"
        return f"balanced ({primary} with me, {others} with others)"


class InteractionTracker:
    """Bounded history: capacity cap plus time-based eviction on every write.

    Statistics use a shorter recency window than the eviction window.
    """

    def __init__(self, config: TrackerConfig | None = None,
                 clock: Callable[[], float] = time.time) -> None:
        self.config = config or TrackerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._history: deque[InteractionRecord] = deque(maxlen=self.config.capacity)

    def record(self, is_primary: bool) -> None:
        with self._lock:
            now = self._clock()
            self._history.append(InteractionRecord(timestamp=now, is_primary=bool(is_primary)))
            cutoff = now - self.config.retention_minutes * 60
            while self._history and self._history[0].timestamp < cutoff:
                self._history.popleft()

    def count_recent(self, is_primary: bool, window_minutes: float | None = None) -> int:
        if window_minutes is None:
            window_minutes = self.config.window_minutes
        if window_minutes <= 0:
            raise InputInvalid(f"window_minutes must be positive, got {window_minutes}")
        with self._lock:
            cutoff = self._clock() - window_minutes * 60
            return sum(1 for r in self._history
                       if r.timestamp > cutoff and r.is_primary == is_primary)

    def statistics(self) -> InteractionStatistics:
        window = self.config.window_minutes
        with self._lock:
            cutoff = self._clock() - window * 60
            recent = [r for r in self._history if r.timestamp > cutoff]
            total = len(self._history)
        primary = sum(1 for r in recent if r.is_primary)
        return InteractionStatistics(
            total=total,
            primary_recent=primary,
            others_recent=len(recent) - primary,
            window_minutes=window,
        )

    def reset(self) -> None:
        with self._lock:
            self._history.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)
