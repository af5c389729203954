"""Biological clock: time-of-day energy and conversational fatigue."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable

from kore_companion.config import ClockConfig
from kore_companion.errors import InputInvalid
from kore_companion.models import clamp

logger = logging.getLogger(__name__)


class TimeOfDay(str, Enum):
    LATE_NIGHT = "late_night"        # 0-5
    EARLY_MORNING = "early_morning"  # 6-8
    MORNING = "morning"              # 9-11
    NOON = "noon"                    # 12-13
    AFTERNOON = "afternoon"          # 14-17
    EVENING = "evening"              # 18-21
    NIGHT = "night"                  # 22-23

    @classmethod
    def from_hour(cls, hour: int) -> TimeOfDay:
        if not 0 <= hour <= 23:
            raise InputInvalid(f"hour must be within 0-23, got {hour}")
        if hour <= 5:
            return cls.LATE_NIGHT
        if hour <= 8:
            return cls.EARLY_MORNING
        if hour <= 11:
            return cls.MORNING
        if hour <= 13:
            return cls.NOON
        if hour <= 17:
            return cls.AFTERNOON
        if hour <= 21:
            return cls.EVENING
        return cls.NIGHT

    @property
    def baseline_energy(self) -> float:
        return _BASELINE_ENERGY[self]


_BASELINE_ENERGY = {
    TimeOfDay.LATE_NIGHT: 0.2,
    TimeOfDay.EARLY_MORNING: 0.4,
    TimeOfDay.MORNING: 1.0,
    TimeOfDay.NOON: 0.9,
    TimeOfDay.AFTERNOON: 0.7,
    TimeOfDay.EVENING: 0.6,
    TimeOfDay.NIGHT: 0.4,
}


@dataclass
class FatigueAccumulation:
    start_time: float
    conversation_count: int = 0
    accumulated_fatigue: float = 0.0

    def is_expired(self, now: float, expiry_seconds: float = 3600.0) -> bool:
        return now - self.start_time > expiry_seconds

    def add_conversation(self, intensity: float = 0.1) -> FatigueAccumulation:
        return replace(
            self,
            conversation_count=self.conversation_count + 1,
            accumulated_fatigue=min(1.0, self.accumulated_fatigue + intensity),
        )

    def recover(self, minutes: int, per_minute: float = 0.05) -> FatigueAccumulation:
        return replace(
            self,
            accumulated_fatigue=max(0.0, self.accumulated_fatigue - minutes * per_minute),
        )


@dataclass(frozen=True)
class BiologicalState:
    time_of_day: TimeOfDay
    energy_level: float
    fatigue: float = 0.0
    conversation_count: int = 0
    fatigue_impact: float = 0.5
    rest_below: float = 0.3
    energetic_above: float = 0.7
    sleepy_below: float = 0.4

    @property
    def overall_energy(self) -> float:
        return clamp(self.energy_level * (1 - self.fatigue * self.fatigue_impact))

    @property
    def needs_rest(self) -> bool:
        return self.overall_energy < self.rest_below

    @property
    def is_energetic(self) -> bool:
        return self.overall_energy > self.energetic_above

    @property
    def is_sleepy(self) -> bool:
        return self.time_of_day is TimeOfDay.LATE_NIGHT and self.energy_level < self.sleepy_below

    def describe(self) -> str:
        energy = self.overall_energy
        if energy > 0.8:
            return "full of energy"
        if energy > 0.6:
            return "lively"
        if energy > 0.4:
            return "a little tired"
        if energy > 0.2:
            return "tired"
        return "exhausted"


class BiologicalClock:
    """Owns the fatigue record. Nothing here can fail: no record means fully rested."""

    def __init__(self, config: ClockConfig | None = None,
                 clock: Callable[[], float] = time.time) -> None:
        self.config = config or ClockConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._fatigue: FatigueAccumulation | None = None
        self._last_update = clock()

    def current_state(self) -> BiologicalState:
        with self._lock:
            now = self._clock()
            self._recover(now)
            fatigue = self._fatigue
        cfg = self.config
        time_of_day = TimeOfDay.from_hour(datetime.fromtimestamp(now).hour)
        return BiologicalState(
            time_of_day=time_of_day,
            energy_level=time_of_day.baseline_energy,
            fatigue=fatigue.accumulated_fatigue if fatigue else 0.0,
            conversation_count=fatigue.conversation_count if fatigue else 0,
            fatigue_impact=cfg.fatigue_impact,
            rest_below=cfg.rest_below,
            energetic_above=cfg.energetic_above,
            sleepy_below=cfg.sleepy_below,
        )

    def record_conversation(self, intensity: float | None = None) -> FatigueAccumulation:
        if intensity is None:
            intensity = self.config.default_intensity
        intensity = clamp(intensity)
        with self._lock:
            now = self._clock()
            self._recover(now)
            current = self._fatigue
            if current is None or current.is_expired(now, self.config.expiry_seconds):
                current = FatigueAccumulation(start_time=now)
            current = current.add_conversation(intensity)
            self._fatigue = current
            self._last_update = now
        if current.accumulated_fatigue > self.config.fatigue_warning:
            logger.warning("fatigue is high (%.2f after %d conversations)",
                           current.accumulated_fatigue, current.conversation_count)
        return current

    def fatigue(self) -> FatigueAccumulation | None:
        with self._lock:
            self._recover(self._clock())
            return self._fatigue

    def overall_energy(self) -> float:
        return self.current_state().overall_energy

    def needs_rest(self) -> bool:
        return self.current_state().needs_rest

    def is_sleepy(self) -> bool:
        return self.current_state().is_sleepy

    def rest(self) -> None:
        with self._lock:
            self._fatigue = None
        logger.debug("rested, fatigue cleared")

    def reset(self) -> None:
        with self._lock:
            self._fatigue = None
            self._last_update = self._clock()

    def _recover(self, now: float) -> None:
        """Natural recovery over whole elapsed minutes. Lock must be held."""
        minutes = int((now - self._last_update) // 60)
        if minutes <= 0:
            return
        if self._fatigue is not None:
            recovered = self._fatigue.recover(minutes, self.config.recovery_per_minute)
            self._fatigue = recovered if recovered.accumulated_fatigue > self.config.discard_below else None
        # carry leftover seconds into the next minute
        self._last_update += minutes * 60
